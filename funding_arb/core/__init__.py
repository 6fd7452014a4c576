"""Core components for cross-venue funding rate arbitrage"""
