"""
Clients for external platforms (shop platform, alerting).
"""
