from __future__ import annotations

from typing import Tuple

from flask import Blueprint, request, jsonify, g, abort
from sqlalchemy import func

from models import storage
from models.user import User
from models.subscription import Subscription
from models.schemas.subscription import SubscribedChannelSchema
from utils.decorators import jwt_required

MAX_LIMIT = 100

bp = Blueprint("subscriptions", __name__, url_prefix="/subscriptions")

subscribed_channels_schema = SubscribedChannelSchema(many=True)


def parse_pagination() -> Tuple[int, int]:
    try:
        page = int(request.args.get("page", "1"))
        limit = int(request.args.get("limit", "20"))
        page = max(page, 1)
        limit = max(1, min(limit, MAX_LIMIT))
        return page, limit
    except ValueError:
        abort(400, description="page and limit must be integers")


def get_user_or_404(user_id: str, description: str) -> User:
    user = storage.get(User, user_id)
    if not user:
        abort(404, description=description)
    return user


@bp.post("/c/<channel_id>")
@jwt_required()
def toggle_subscription(channel_id: str):
    """
    Subscribe to a channel, or unsubscribe if already subscribed
    ---
    tags:
      - Subscriptions
    security:
      - Bearer: []
    parameters:
      - in: path
        name: channel_id
        type: string
        required: true
    responses:
      200: { description: Unsubscribed }
      201: { description: Subscribed }
      400: { description: Own channel }
      404: { description: Channel not found }
    """
    subscriber: User = g.current_user
    if subscriber.id == channel_id:
        abort(400, description="You cannot subscribe to your own channel")
    get_user_or_404(channel_id, "Channel (user) not found")

    session = storage.get_session()
    existing = (
        session.query(Subscription)
        .filter(Subscription.subscriber_id == subscriber.id, Subscription.channel_id == channel_id)
        .first()
    )
    if existing:
        storage.delete(existing)
        storage.save()
        return jsonify({"data": {"is_subscribed": False}, "message": "Unsubscribed successfully"}), 200

    storage.new(Subscription(subscriber_id=subscriber.id, channel_id=channel_id))
    storage.save()
    return jsonify({"data": {"is_subscribed": True}, "message": "Subscribed successfully"}), 201


@bp.get("/c/<subscriber_id>")
@jwt_required()
def subscribed_channels(subscriber_id: str):
    """
    Channels a user is subscribed to, newest subscription first
    ---
    tags:
      - Subscriptions
    security:
      - Bearer: []
    parameters:
      - in: path
        name: subscriber_id
        type: string
        required: true
      - in: query
        name: page
        type: integer
        default: 1
      - in: query
        name: limit
        type: integer
        default: 20
    responses:
      200: { description: OK }
      404: { description: Subscriber not found }
    """
    get_user_or_404(subscriber_id, "Subscriber not found")
    page, limit = parse_pagination()
    session = storage.get_session()

    counts = (
        session.query(Subscription.channel_id.label("channel_id"), func.count(Subscription.id).label("n"))
        .group_by(Subscription.channel_id)
        .subquery()
    )
    query = (
        session.query(User, Subscription.created_at, func.coalesce(counts.c.n, 0))
        .join(Subscription, Subscription.channel_id == User.id)
        .outerjoin(counts, counts.c.channel_id == User.id)
        .filter(Subscription.subscriber_id == subscriber_id)
    )
    total = query.count()
    rows = (
        query.order_by(Subscription.created_at.desc(), Subscription.id)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    channels = [
        {
            "id": channel.id,
            "username": channel.username,
            "full_name": channel.full_name,
            "avatar": channel.avatar,
            "subscriber_count": subscriber_count,
            "subscription_date": subscribed_at,
        }
        for channel, subscribed_at, subscriber_count in rows
    ]
    return jsonify(
        {
            "data": subscribed_channels_schema.dump(channels),
            "meta": {"page": page, "limit": limit, "total": total},
        }
    )


@bp.get("/u/<channel_id>")
@jwt_required()
def channel_subscribers(channel_id: str):
    """
    Number of subscribers of a channel
    ---
    tags:
      - Subscriptions
    security:
      - Bearer: []
    parameters:
      - in: path
        name: channel_id
        type: string
        required: true
    responses:
      200: { description: OK }
      404: { description: Channel not found }
    """
    get_user_or_404(channel_id, "Channel (user) not found")
    session = storage.get_session()
    total = session.query(func.count(Subscription.id)).filter(Subscription.channel_id == channel_id).scalar()
    return jsonify({"data": {"total_subscribers": total}})


@bp.get("/is-subscribed/<channel_id>")
@jwt_required()
def is_subscribed(channel_id: str):
    """
    Whether the current user is subscribed to a channel
    ---
    tags:
      - Subscriptions
    security:
      - Bearer: []
    parameters:
      - in: path
        name: channel_id
        type: string
        required: true
    responses:
      200: { description: OK }
    """
    session = storage.get_session()
    found = (
        session.query(Subscription.id)
        .filter(Subscription.subscriber_id == g.current_user.id, Subscription.channel_id == channel_id)
        .first()
    )
    return jsonify({"data": {"is_subscribed": found is not None}})
