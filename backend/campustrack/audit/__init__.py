"""Audit trail for retention lifecycle transitions"""
