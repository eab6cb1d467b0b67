"""Sync services: tracker clients, correspondence store and the reconciliation engine"""
