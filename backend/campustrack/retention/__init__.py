"""Retention engine - item and user deletion lifecycles, scheduled via Celery"""
