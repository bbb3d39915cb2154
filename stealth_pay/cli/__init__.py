"""
StealthPay - CLI Package
==========================
"""
