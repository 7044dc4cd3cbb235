"""HTML templates for retention warning emails.

Templates are pure functions. Every interpolated string is HTML-escaped here,
so callers pass raw user data.
"""

from html import escape
from typing import Any

ITEM_WARNING_SUBJECT = "Your Item Will Be Deleted Soon - Take Action Now"
ACCOUNT_WARNING_SUBJECT = "Your Account Will Be Deleted Soon - Login to Prevent Deletion"


def _days(days_remaining: int) -> str:
    return f"{days_remaining} day" if days_remaining == 1 else f"{days_remaining} days"


def item_deletion_warning_template(
    name: str,
    item_title: str,
    days_remaining: int,
    frontend_url: str,
    item_id: Any,
) -> str:
    """Warning sent to an item owner the day before the item is purged."""
    item_url = f"{frontend_url.rstrip('/')}/items/{item_id}"
    return f"""
      <p>Hello {escape(name or 'there')},</p>
      <p>Your item titled "<strong>{escape(item_title)}</strong>" has had no activity for a long time
      and is scheduled for deletion.</p>
      <p>It will be permanently deleted in <strong>{_days(days_remaining)}</strong>.</p>
      <p>If the item is still relevant, open it to keep it listed:
      <a href="{escape(item_url, quote=True)}">{escape(item_url)}</a></p>
      <p>Thank you for using CampusTrack!</p>
    """


def account_deletion_warning_template(
    name: str,
    days_remaining: int,
    frontend_url: str,
) -> str:
    """Warning sent to a user whose account is scheduled for deletion."""
    login_url = f"{frontend_url.rstrip('/')}/login"
    return f"""
      <p>Hello {escape(name or 'there')},</p>
      <p>Your CampusTrack account is scheduled for deletion due to inactivity.</p>
      <p>It will be permanently deleted, together with your items and conversations,
      in <strong>{_days(days_remaining)}</strong>.</p>
      <p>Log in to keep your account:
      <a href="{escape(login_url, quote=True)}">{escape(login_url)}</a></p>
      <p>Thank you for using CampusTrack!</p>
    """
