"""
Webhook event relay and real-time subscriptions.
"""
