"""Database Access Layer for the Analytics Gateway.

This package provides the metrics repository that runs the chatbot analytics
queries against each tenant's PostgreSQL database.
"""
