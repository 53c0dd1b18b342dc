from marshmallow import Schema, fields


class SubscribedChannelSchema(Schema):
    """A channel in someone's subscription list, with its own subscriber count."""
    id = fields.String()
    username = fields.String()
    full_name = fields.String()
    avatar = fields.String()
    subscriber_count = fields.Integer()
    subscription_date = fields.DateTime()
