from __future__ import annotations

from sqlalchemy import Boolean, Column, Index, Integer, BigInteger, Text

from . import LocalBase


class UserRow(LocalBase):
    __tablename__ = "users"

    id = Column(Text, primary_key=True)
    email = Column(Text, nullable=False, unique=True)
    password_hash = Column(Text, nullable=False)
    created_at = Column(BigInteger, nullable=False)
    last_login = Column(BigInteger)


class ApiKeyRow(LocalBase):
    __tablename__ = "api_keys"

    id = Column(Text, primary_key=True)
    user_id = Column(Text, nullable=False)
    key_hash = Column(Text, nullable=False, unique=True)
    name = Column(Text, nullable=False)
    prefix = Column(Text, nullable=False)
    rate_limit = Column(Integer, nullable=False, default=100)
    created_at = Column(BigInteger, nullable=False)
    last_used = Column(BigInteger)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (Index("idx_api_keys_user_id", "user_id"),)


class WebhookRow(LocalBase):
    __tablename__ = "webhooks"

    id = Column(Text, primary_key=True)
    user_id = Column(Text, nullable=False)
    url = Column(Text, nullable=False)
    events = Column(Text, nullable=False)  # JSON list
    secret = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(BigInteger, nullable=False)

    __table_args__ = (Index("idx_webhooks_user_id", "user_id"),)


class MediaRow(LocalBase):
    __tablename__ = "media"

    id = Column(Text, primary_key=True)
    telegram_file_id = Column(Text, nullable=False)
    created_at = Column(BigInteger, nullable=False)
    views = Column(Integer, nullable=False, default=0)
    size = Column(BigInteger, nullable=False, default=0)
    mime_type = Column(Text)
    version = Column(Text)
    source = Column(Text)
    user_id = Column(Text)

    __table_args__ = (
        Index("idx_media_user_id", "user_id"),
        Index("idx_media_created_at", "created_at"),
    )
