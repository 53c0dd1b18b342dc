from marshmallow import EXCLUDE, Schema, fields, pre_load, validate

from models.schemas.user import UserSummarySchema


def _strip_strings(data, keys):
    if not isinstance(data, dict):
        return data
    data = dict(data)
    for key in keys:
        if isinstance(data.get(key), str):
            data[key] = data[key].strip()
    return data


class VideoCreateSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    title = fields.String(required=True, validate=validate.Length(min=1, max=255))
    description = fields.String(required=True, validate=validate.Length(min=1))

    @pre_load
    def normalize(self, data, **kwargs):
        return _strip_strings(data, ("title", "description"))


class VideoUpdateSchema(Schema):
    # All optional, but validate if present
    class Meta:
        unknown = EXCLUDE

    title = fields.String(validate=validate.Length(min=1, max=255))
    description = fields.String(validate=validate.Length(min=1))
    is_published = fields.Boolean()

    @pre_load
    def normalize(self, data, **kwargs):
        return _strip_strings(data, ("title", "description"))


class VideoOutSchema(Schema):
    id = fields.String()
    title = fields.String()
    description = fields.String(allow_none=True)
    video_file = fields.String()
    thumbnail = fields.String()
    duration = fields.Float()
    views = fields.Integer()
    is_published = fields.Boolean()
    owner = fields.Nested(UserSummarySchema)
    created_at = fields.DateTime()
