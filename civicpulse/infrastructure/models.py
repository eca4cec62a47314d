from sqlalchemy import Column, String, Float, DateTime, Boolean, ForeignKey, Integer, Index, Uuid
from sqlalchemy.orm import relationship
from .database import Base
import uuid
from datetime import datetime


class User(Base):
    """Profile row, created on first authentication."""
    __tablename__ = "profiles"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    username = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, unique=True, index=True, nullable=True)
    display_name = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Authentication fields
    google_id = Column(String, unique=True, nullable=True, index=True)
    auth_provider = Column(String, default="google")

    # Gamification
    points = Column(Integer, default=0, nullable=False)

    # Moderation flags, only ever changed by admins
    is_admin = Column(Boolean, default=False, nullable=False)
    is_banned = Column(Boolean, default=False, nullable=False)

    # Relationships
    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")


class Report(Base):
    __tablename__ = "reports"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("profiles.id"), nullable=False, index=True)
    title = Column(String(120), nullable=False)
    description = Column(String(2000), nullable=False)
    category = Column(String(30), nullable=False, default="Other")
    status = Column(String(20), nullable=False, default="OPEN")
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    image_url = Column(String, nullable=True)
    image_path = Column(String, nullable=True)  # storage key, kept for cleanup
    is_hidden = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = relationship("User")

    __table_args__ = (
        Index("ix_reports_hidden_created", "is_hidden", "created_at"),
    )


class Comment(Base):
    """Comments on reports for community updates"""
    __tablename__ = "comments"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    report_id = Column(Uuid, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    content = Column(String(500), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    author = relationship("User")

    __table_args__ = (
        Index("ix_comments_report_created", "report_id", "created_at"),
    )


class Follow(Base):
    """A user's subscription to one report - at most one row per (report, user)"""
    __tablename__ = "follows"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    report_id = Column(Uuid, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_follows_report_user", "report_id", "user_id", unique=True),
    )


class UserBadge(Base):
    __tablename__ = "user_badges"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    badge_type = Column(String(30), nullable=False)
    awarded_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_user_badges_user_type", "user_id", "badge_type", unique=True),
    )


class Notification(Base):
    __tablename__ = "notifications"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(30), nullable=False)
    message = Column(String(500), nullable=False)
    link = Column(String, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_notifications_user_created", "user_id", "created_at"),
    )


class RefreshToken(Base):
    """Stores refresh tokens for JWT sessions with rotation support"""
    __tablename__ = "refresh_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    token_hash = Column(String, unique=True, nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    revoked = Column(Boolean, default=False)

    user = relationship("User", back_populates="refresh_tokens")
