"""
Portfolio models shared by the valuation engine, the session snapshot and the CLI.
"""
