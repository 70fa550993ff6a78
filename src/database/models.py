"""
SQLAlchemy models for the back-office: admin users and roles, properties,
agreements and signatures, leads from Telegram/WhatsApp, invoices/receipts
and the owner portal.
Used by postgres_real (PostgreSQL) and postgres (in-process SQLite).
"""
from __future__ import annotations
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


# ======================================================================
# Admin users, roles, permissions
# ======================================================================

user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)

role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", Integer, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_super_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    roles: Mapped[List["Role"]] = relationship("Role", secondary=user_roles, back_populates="users", lazy="selectin")


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    role_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    users: Mapped[List["User"]] = relationship("User", secondary=user_roles, back_populates="roles")
    permissions: Mapped[List["Permission"]] = relationship("Permission", secondary=role_permissions, lazy="selectin")


class Permission(Base):
    __tablename__ = "permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    permission_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    module: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token: Mapped[str] = mapped_column(String(512), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


# ======================================================================
# Properties
# ======================================================================

class Property(Base):
    __tablename__ = "properties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    property_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    owner_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    deal_type: Mapped[str] = mapped_column(String(16), default="rent", nullable=False)
    status: Mapped[str] = mapped_column(String(32), default="draft", nullable=False)
    bedrooms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    sale_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sale_pricing_mode: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    year_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    year_pricing_mode: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    deposit_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    deposit_amount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    electricity_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    water_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    created_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class PropertyPricing(Base):
    """Seasonal nightly pricing."""

    __tablename__ = "property_pricing"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)
    season_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    start_date_recurring: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)  # DD-MM
    end_date_recurring: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    price_per_night: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    source_price_per_night: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    pricing_mode: Mapped[str] = mapped_column(String(16), default="net", nullable=False)
    pricing_type: Mapped[str] = mapped_column(String(16), default="per_night", nullable=False)
    minimum_nights: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    commission_type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    commission_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)


class PropertyMonthlyPricing(Base):
    __tablename__ = "property_pricing_monthly"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)
    month_number: Mapped[int] = mapped_column(Integer, nullable=False)
    price_per_month: Mapped[float] = mapped_column(Float, nullable=False)
    pricing_mode: Mapped[str] = mapped_column(String(16), default="net", nullable=False)
    commission_type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    commission_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    minimum_days: Mapped[int] = mapped_column(Integer, default=28, nullable=False)


class PropertyCalendar(Base):
    """Blocked dates."""

    __tablename__ = "property_calendar"
    __table_args__ = (UniqueConstraint("property_id", "blocked_date", name="uq_property_calendar_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)
    blocked_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_check_in: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_check_out: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    source_calendar_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class PropertyExternalCalendar(Base):
    __tablename__ = "property_external_calendars"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)
    calendar_name: Mapped[str] = mapped_column(String(255), nullable=False)
    ics_url: Mapped[str] = mapped_column(Text, nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    total_events: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


# ======================================================================
# Agreements
# ======================================================================

class AgreementTemplate(Base):
    __tablename__ = "agreement_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    structure: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON document
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class Agreement(Base):
    __tablename__ = "agreements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    agreement_number: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    template_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("agreement_templates.id"), nullable=True)
    property_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("properties.id"), nullable=True, index=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(32), default="draft", nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    structure: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    city: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    date_from: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    date_to: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    rent_amount_monthly: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    rent_amount_total: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    deposit_amount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    utilities_included: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    bank_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    bank_account_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    bank_account_number: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    upon_signed_pay: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    upon_checkin_pay: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    upon_checkout_pay: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    property_name_manual: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    property_number_manual: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    property_address_override: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    public_link: Mapped[str] = mapped_column(String(512), nullable=False)
    verify_link: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    request_uuid: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    pdf_path: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    created_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class AgreementParty(Base):
    __tablename__ = "agreement_parties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    agreement_id: Mapped[int] = mapped_column(Integer, ForeignKey("agreements.id", ondelete="CASCADE"), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(64), nullable=False)
    is_company: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    passport_country: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    passport_number: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    company_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    company_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    company_tax_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    director_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    director_passport: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    director_country: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    documents: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class AgreementSignature(Base):
    __tablename__ = "agreement_signatures"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    agreement_id: Mapped[int] = mapped_column(Integer, ForeignKey("agreements.id", ondelete="CASCADE"), nullable=False, index=True)
    signer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    signer_role: Mapped[str] = mapped_column(String(64), nullable=False)
    position_x: Mapped[float] = mapped_column(Float, default=100, nullable=False)
    position_y: Mapped[float] = mapped_column(Float, default=100, nullable=False)
    position_page: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    signature_link: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    is_signed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    signature_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    signed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    first_visit_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    device_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    browser: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    os: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    agreement_view_duration: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    signature_clear_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_session_duration: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class AgreementLog(Base):
    __tablename__ = "agreement_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    agreement_id: Mapped[int] = mapped_column(Integer, ForeignKey("agreements.id", ondelete="CASCADE"), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class AgreementEditLog(Base):
    """AI editor history, one row per suggested edit."""

    __tablename__ = "agreement_ai_edit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    agreement_id: Mapped[int] = mapped_column(Integer, ForeignKey("agreements.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    conversation_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    ai_response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    changes_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    changes_list: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    html_before: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    html_after: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    structure_before: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    structure_after: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    database_fields_changed: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    was_applied: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


# ======================================================================
# Leads: Telegram bot users, agent groups, requests
# ======================================================================

class BotUser(Base):
    __tablename__ = "bot_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    telegram_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    username: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class AgentGroup(Base):
    __tablename__ = "agent_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_name: Mapped[str] = mapped_column(String(255), nullable=False)
    telegram_chat_id: Mapped[str] = mapped_column(String(64), nullable=False)
    manager_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class AgentGroupMember(Base):
    __tablename__ = "agent_group_members"
    __table_args__ = (UniqueConstraint("group_id", "bot_user_id", name="uq_agent_group_member"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(Integer, ForeignKey("agent_groups.id", ondelete="CASCADE"), nullable=False)
    bot_user_id: Mapped[int] = mapped_column(Integer, ForeignKey("bot_users.id", ondelete="CASCADE"), nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class Request(Base):
    __tablename__ = "requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_number: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    uuid: Mapped[str] = mapped_column(String(36), unique=True, nullable=False, index=True)
    chat_uuid: Mapped[str] = mapped_column(String(36), unique=True, nullable=False, index=True)
    request_source: Mapped[str] = mapped_column(String(16), default="telegram", nullable=False)
    status: Mapped[str] = mapped_column(String(32), default="new", nullable=False, index=True)

    client_telegram_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    client_username: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    client_first_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    client_last_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    client_phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    whatsapp_phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    agent_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("bot_users.id"), nullable=True, index=True)
    agent_group_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("agent_groups.id"), nullable=True)
    manager_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    agreement_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("agreements.id"), nullable=True)

    # Fields the agent fills in on the public request page
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    check_in_date: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    check_out_date: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    budget: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rental_period: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    district: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    rental_dates: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    villa_name_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rental_cost: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    cost_includes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    utilities_cost: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_terms: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    deposit_amount: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    additional_terms: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    client_passport_front: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    client_passport_back: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    agent_passport_front: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    agent_passport_back: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    owner_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    client_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    price_markup_percent: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    agent_accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    deal_created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    contract_requested_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class RequestMessage(Base):
    __tablename__ = "request_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[int] = mapped_column(Integer, ForeignKey("requests.id", ondelete="CASCADE"), nullable=False, index=True)
    telegram_message_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    message_type: Mapped[str] = mapped_column(String(32), default="text", nullable=False)
    message_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    media_file_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    media_path: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    sender_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    sender_telegram_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    is_from_client: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    message_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class RequestProposedProperty(Base):
    __tablename__ = "request_proposed_properties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[int] = mapped_column(Integer, ForeignKey("requests.id", ondelete="CASCADE"), nullable=False, index=True)
    property_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("properties.id"), nullable=True)
    custom_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    proposed_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("bot_users.id"), nullable=True)
    proposed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class RequestFieldHistory(Base):
    __tablename__ = "request_field_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[int] = mapped_column(Integer, ForeignKey("requests.id", ondelete="CASCADE"), nullable=False, index=True)
    field_name: Mapped[str] = mapped_column(String(64), nullable=False)
    old_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    changed_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("bot_users.id"), nullable=True)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class RequestAnalytics(Base):
    __tablename__ = "request_analytics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[int] = mapped_column(Integer, ForeignKey("requests.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    event_data: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


# ======================================================================
# Financial documents
# ======================================================================

class SavedBankDetails(Base):
    __tablename__ = "saved_bank_details"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    bank_details_type: Mapped[str] = mapped_column(String(16), default="simple", nullable=False)
    bank_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    bank_account_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    bank_account_number: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    bank_account_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    bank_currency: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    bank_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    bank_swift_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    bank_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    bank_custom_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class Invoice(Base):
    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_number: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    uuid: Mapped[str] = mapped_column(String(36), unique=True, nullable=False, index=True)
    agreement_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("agreements.id"), nullable=True, index=True)
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    from_type: Mapped[str] = mapped_column(String(16), default="company", nullable=False)
    from_company_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    from_company_tax_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    from_company_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    from_director_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    from_director_country: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    from_director_passport: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    from_individual_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    from_individual_country: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    from_individual_passport: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    to_type: Mapped[str] = mapped_column(String(16), default="individual", nullable=False)
    to_company_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    to_company_tax_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    to_company_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    to_director_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    to_director_country: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    to_director_passport: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    to_individual_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    to_individual_country: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    to_individual_passport: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    subtotal: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    tax_amount: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    total_amount: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    amount_paid: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), default="THB", nullable=False)

    bank_details_type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    bank_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    bank_account_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    bank_account_number: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    bank_account_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    bank_currency: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    bank_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    bank_swift_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    bank_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    bank_custom_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), default="draft", nullable=False)
    pdf_path: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_id: Mapped[int] = mapped_column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[float] = mapped_column(Float, default=1, nullable=False)
    unit_price: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    total_price: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    is_fully_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    amount_paid: Mapped[float] = mapped_column(Float, default=0, nullable=False)


class Receipt(Base):
    __tablename__ = "receipts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    receipt_number: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    uuid: Mapped[str] = mapped_column(String(36), unique=True, nullable=False, index=True)
    invoice_id: Mapped[int] = mapped_column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)
    agreement_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("agreements.id"), nullable=True)
    receipt_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount_paid: Mapped[float] = mapped_column(Float, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(32), default="bank_transfer", nullable=False)

    bank_details_type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    bank_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    bank_account_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    bank_account_number: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    bank_account_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    bank_currency: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    bank_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    bank_swift_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    bank_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    bank_custom_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="verified", nullable=False)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class ReceiptInvoiceItem(Base):
    __tablename__ = "receipt_invoice_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    receipt_id: Mapped[int] = mapped_column(Integer, ForeignKey("receipts.id", ondelete="CASCADE"), nullable=False, index=True)
    invoice_item_id: Mapped[int] = mapped_column(Integer, ForeignKey("invoice_items.id", ondelete="CASCADE"), nullable=False)
    amount_allocated: Mapped[float] = mapped_column(Float, default=0, nullable=False)


# ======================================================================
# Owner portal
# ======================================================================

class PropertyOwner(Base):
    __tablename__ = "property_owners"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    access_token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    # Kept so admins can hand the credentials over again
    current_password: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    can_edit_calendar: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    can_edit_pricing: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class OwnerRefreshToken(Base):
    __tablename__ = "property_owner_refresh_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(Integer, ForeignKey("property_owners.id", ondelete="CASCADE"), nullable=False, index=True)
    token: Mapped[str] = mapped_column(String(512), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
