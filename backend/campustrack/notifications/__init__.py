"""Outbound notifications: warning email templates and the HTTP mail relay client"""
