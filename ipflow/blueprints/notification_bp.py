"""
IP Portfolio Workflow Service
Notification Blueprint — the caller's in-app inbox.

Routes:
  GET    /notifications                 – list (query: unread_only, limit, offset)
  GET    /notifications/unread-count    – unread badge count
  PATCH  /notifications/<nid>/read      – mark one read
  POST   /notifications/mark-all-read   – mark all read
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from ipflow.blueprints import current_actor
from ipflow.services.notification import NotificationService

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification", __name__, url_prefix="/api/v1")


@notification_bp.route("/notifications", methods=["GET"])
def list_notifications():
    unread_only = request.args.get("unread_only", "false").lower() in ("1", "true", "yes")
    max_limit = current_app.config.get("WORKFLOW_PAGE_SIZE_MAX", 100)
    limit = min(max(request.args.get("limit", 50, type=int) or 50, 1), max_limit)
    offset = max(request.args.get("offset", 0, type=int) or 0, 0)

    recipient = current_actor().id
    items, total = NotificationService.list_for_recipient(
        recipient, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(recipient),
    })


@notification_bp.route("/notifications/unread-count", methods=["GET"])
def unread_count():
    return jsonify({"unread_count": NotificationService.unread_count(current_actor().id)})


@notification_bp.route("/notifications/<int:notification_id>/read", methods=["PATCH"])
def mark_read(notification_id):
    notif = NotificationService.mark_read(notification_id, current_actor().id)
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/mark-all-read", methods=["POST"])
def mark_all_read():
    count = NotificationService.mark_all_read(current_actor().id)
    logger.debug("Marked %d notifications read for %s", count, current_actor().id)
    return jsonify({"marked_read": count})
