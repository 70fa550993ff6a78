"""
Owner portal.

Admins issue a per-owner access link (64-hex token plus a generated password).
Owners log in with both and manage pricing and calendars of the properties
whose `owner_name` matches their account.
"""
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

import jwt
from fastapi import HTTPException
from sqlalchemy import delete, func, select

from src.backoffice import security
from src.backoffice.controllers.agreements_controller import frontend_url
from src.backoffice.serializers import model_to_dict
from src.backoffice.validation import clamp_int, optional_str, parse_bool, parse_iso_date, to_float
from src.database.models import (
    OwnerRefreshToken,
    Property,
    PropertyCalendar,
    PropertyExternalCalendar,
    PropertyMonthlyPricing,
    PropertyOwner,
    PropertyPricing,
)
from src.utils.config_loader import get_app_config

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_REASON = "Blocked by owner"

PROPERTY_PRICE_FIELDS = {
    "sale_price": "money",
    "sale_pricing_mode": "text",
    "year_price": "money",
    "year_pricing_mode": "text",
    "deposit_type": "text",
    "deposit_amount": "money",
    "electricity_rate": "money",
    "water_rate": "money",
}


def owner_portal_url() -> str:
    return os.getenv("OWNER_PORTAL_URL", "").strip().rstrip("/") or frontend_url()


def _owner_claims(owner: PropertyOwner) -> Dict[str, Any]:
    return {"owner_id": owner.id, "owner_name": owner.owner_name, "typ": "owner"}


class PropertyOwnersController:
    def __init__(self, db):
        self.db = db
        self.auth_cfg = get_app_config().auth

    @staticmethod
    def _properties_count(s, owner_name: str) -> int:
        return s.execute(
            select(func.count(Property.id)).where(Property.owner_name == owner_name, Property.deleted_at.is_(None))
        ).scalar_one()

    @staticmethod
    def _owned_property(s, property_id: int, owner_name: str) -> Property:
        prop = s.execute(
            select(Property).where(
                Property.id == property_id, Property.owner_name == owner_name, Property.deleted_at.is_(None)
            )
        ).scalars().first()
        if not prop:
            raise HTTPException(status_code=404, detail="Property not found or you do not have access to it")
        return prop

    def _issue_tokens(self, s, owner: PropertyOwner) -> Dict[str, str]:
        days = self.auth_cfg.owner_refresh_token_days
        claims = _owner_claims(owner)
        access_token = security.create_access_token(claims)
        refresh_token = security.create_refresh_token(claims, days=days)
        s.add(OwnerRefreshToken(owner_id=owner.id, token=refresh_token, expires_at=security.refresh_expiry(days)))
        return {"accessToken": access_token, "refreshToken": refresh_token}

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    def create_access(self, payload: Dict[str, Any], admin_id: int) -> Dict[str, Any]:
        owner_name = optional_str(payload, "owner_name")
        if not owner_name:
            raise HTTPException(status_code=400, detail="Owner name is required")
        can_edit_calendar = parse_bool(payload.get("can_edit_calendar"), default=True)
        can_edit_pricing = parse_bool(payload.get("can_edit_pricing"), default=True)

        with self.db.session() as s:
            existing = s.execute(select(PropertyOwner).where(PropertyOwner.owner_name == owner_name)).scalars().first()
            if existing:
                raise HTTPException(status_code=400, detail="Access for this owner has already been created")

            properties_count = self._properties_count(s, owner_name)
            if properties_count == 0:
                raise HTTPException(status_code=400, detail="No properties found with this owner name")

            password = security.generate_password(10)
            owner = PropertyOwner(
                owner_name=owner_name,
                access_token=security.generate_owner_access_token(),
                password_hash=security.hash_password(password),
                current_password=password,
                can_edit_calendar=can_edit_calendar,
                can_edit_pricing=can_edit_pricing,
                created_by=admin_id,
            )
            s.add(owner)
            s.flush()
            logger.info("Owner access created: %s (%s properties)", owner_name, properties_count)
            return {
                "owner_name": owner_name,
                "access_url": f"{owner_portal_url()}/owner/{owner.access_token}",
                "password": password,
                "properties_count": properties_count,
                "can_edit_calendar": can_edit_calendar,
                "can_edit_pricing": can_edit_pricing,
            }

    def owner_info(self, owner_name: str) -> Dict[str, Any]:
        with self.db.session() as s:
            owner = s.execute(select(PropertyOwner).where(PropertyOwner.owner_name == owner_name)).scalars().first()
            if not owner:
                raise HTTPException(status_code=404, detail="Access for this owner has not been created")
            return {
                "access_url": f"{owner_portal_url()}/owner/{owner.access_token}",
                "password": owner.current_password,
                "is_active": owner.is_active,
                "last_login_at": owner.last_login_at.isoformat() if owner.last_login_at else None,
                "created_at": owner.created_at.isoformat() if owner.created_at else None,
                "can_edit_calendar": owner.can_edit_calendar,
                "can_edit_pricing": owner.can_edit_pricing,
            }

    def update_permissions(self, owner_name: str, payload: Dict[str, Any]) -> None:
        if payload.get("can_edit_calendar") is None and payload.get("can_edit_pricing") is None:
            raise HTTPException(status_code=400, detail="At least one permission must be specified")

        with self.db.session() as s:
            owner = s.execute(select(PropertyOwner).where(PropertyOwner.owner_name == owner_name)).scalars().first()
            if not owner:
                raise HTTPException(status_code=404, detail="Owner not found")
            if payload.get("can_edit_calendar") is not None:
                owner.can_edit_calendar = parse_bool(payload["can_edit_calendar"])
            if payload.get("can_edit_pricing") is not None:
                owner.can_edit_pricing = parse_bool(payload["can_edit_pricing"])
            owner.updated_at = datetime.utcnow()
            logger.info("Owner permissions updated: %s", owner_name)

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    def verify_token(self, access_token: str) -> Dict[str, Any]:
        with self.db.session() as s:
            owner = s.execute(
                select(PropertyOwner).where(PropertyOwner.access_token == access_token, PropertyOwner.is_active.is_(True))
            ).scalars().first()
            if not owner:
                raise HTTPException(status_code=404, detail="Access not found or deactivated")
            return {
                "owner_name": owner.owner_name,
                "properties_count": self._properties_count(s, owner.owner_name),
                "last_login_at": owner.last_login_at.isoformat() if owner.last_login_at else None,
                "can_edit_calendar": owner.can_edit_calendar,
                "can_edit_pricing": owner.can_edit_pricing,
            }

    def login(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        access_token = optional_str(payload, "access_token")
        password = payload.get("password")
        if not access_token or not password:
            raise HTTPException(status_code=400, detail="Access token and password are required")

        with self.db.session() as s:
            owner = s.execute(select(PropertyOwner).where(PropertyOwner.access_token == access_token)).scalars().first()
            if not owner:
                raise HTTPException(status_code=401, detail="Invalid token or password")
            if not owner.is_active:
                raise HTTPException(status_code=403, detail="Access deactivated. Contact the administrator")
            if not security.verify_password(str(password), owner.password_hash):
                logger.info("Failed owner login for %s", owner.owner_name)
                raise HTTPException(status_code=401, detail="Invalid token or password")

            tokens = self._issue_tokens(s, owner)
            owner.last_login_at = datetime.utcnow()
            logger.info("Owner logged in: %s", owner.owner_name)
            return {
                "owner": {
                    "id": owner.id,
                    "owner_name": owner.owner_name,
                    "access_token": owner.access_token,
                    "properties_count": self._properties_count(s, owner.owner_name),
                    "can_edit_calendar": owner.can_edit_calendar,
                    "can_edit_pricing": owner.can_edit_pricing,
                },
                **tokens,
            }

    def refresh(self, refresh_token: Optional[str]) -> Dict[str, str]:
        if not refresh_token:
            raise HTTPException(status_code=400, detail="Refresh token is required")
        try:
            claims = security.decode_refresh_token(refresh_token)
        except jwt.InvalidTokenError:
            raise HTTPException(status_code=401, detail="Invalid refresh token")
        if claims.get("typ") != "owner":
            raise HTTPException(status_code=401, detail="Invalid refresh token")

        with self.db.session() as s:
            stored = s.execute(
                select(OwnerRefreshToken).where(
                    OwnerRefreshToken.token == refresh_token, OwnerRefreshToken.expires_at > datetime.utcnow()
                )
            ).scalars().first()
            owner = s.get(PropertyOwner, stored.owner_id) if stored else None
            if not owner or not owner.is_active:
                raise HTTPException(status_code=401, detail="Refresh token is invalid or access is deactivated")

            s.execute(delete(OwnerRefreshToken).where(OwnerRefreshToken.token == refresh_token))
            return self._issue_tokens(s, owner)

    # ------------------------------------------------------------------
    # Owner-authenticated
    # ------------------------------------------------------------------

    def change_password(self, owner_id: int, payload: Dict[str, Any]) -> None:
        current_password = payload.get("current_password")
        new_password = payload.get("new_password")
        if not current_password or not new_password:
            raise HTTPException(status_code=400, detail="Current and new password are required")
        if len(str(new_password)) < 6:
            raise HTTPException(status_code=400, detail="New password must be at least 6 characters")

        with self.db.session() as s:
            owner = s.get(PropertyOwner, owner_id)
            if not owner:
                raise HTTPException(status_code=404, detail="Owner not found")
            if not security.verify_password(str(current_password), owner.password_hash):
                raise HTTPException(status_code=401, detail="Current password is incorrect")
            owner.password_hash = security.hash_password(str(new_password))
            owner.current_password = str(new_password)
            owner.updated_at = datetime.utcnow()
            logger.info("Owner changed password: %s", owner.owner_name)

    def properties(self, owner_name: str) -> List[Dict[str, Any]]:
        seasons = (
            select(func.count(PropertyPricing.id))
            .where(PropertyPricing.property_id == Property.id)
            .correlate(Property)
            .scalar_subquery()
        )
        months = (
            select(func.count(PropertyMonthlyPricing.id))
            .where(PropertyMonthlyPricing.property_id == Property.id)
            .correlate(Property)
            .scalar_subquery()
        )
        blocked = (
            select(func.count(PropertyCalendar.id))
            .where(PropertyCalendar.property_id == Property.id)
            .correlate(Property)
            .scalar_subquery()
        )
        with self.db.session() as s:
            rows = s.execute(
                select(Property, seasons.label("seasons"), months.label("months"), blocked.label("blocked"))
                .where(Property.owner_name == owner_name, Property.deleted_at.is_(None))
                .order_by(Property.created_at.desc(), Property.id.desc())
            ).all()
            out = []
            for prop, season_count, month_count, blocked_count in rows:
                row = {
                    key: getattr(prop, key)
                    for key in ("id", "property_number", "property_name", "deal_type", "bedrooms")
                }
                row.update({key: getattr(prop, key) for key in PROPERTY_PRICE_FIELDS})
                row["seasonal_pricing_count"] = season_count
                row["monthly_pricing_count"] = month_count
                row["blocked_dates_count"] = blocked_count
                out.append(row)
            return out

    def property_detail(self, owner_name: str, property_id: int) -> Dict[str, Any]:
        with self.db.session() as s:
            prop = self._owned_property(s, property_id, owner_name)
            data = model_to_dict(prop, exclude=("created_by", "deleted_at"))
            seasonal = s.execute(
                select(PropertyPricing)
                .where(PropertyPricing.property_id == prop.id)
                .order_by(PropertyPricing.start_date_recurring.asc(), PropertyPricing.id.asc())
            ).scalars().all()
            monthly = s.execute(
                select(PropertyMonthlyPricing)
                .where(PropertyMonthlyPricing.property_id == prop.id)
                .order_by(PropertyMonthlyPricing.month_number.asc())
            ).scalars().all()
            data["seasonal_pricing"] = [model_to_dict(p, exclude=("property_id",)) for p in seasonal]
            data["monthly_pricing"] = [model_to_dict(p, exclude=("property_id",)) for p in monthly]
            return data

    def update_pricing(self, owner_name: str, property_id: int, payload: Dict[str, Any]) -> None:
        with self.db.session() as s:
            prop = self._owned_property(s, property_id, owner_name)
            for key, kind in PROPERTY_PRICE_FIELDS.items():
                if key not in payload:
                    continue
                value = to_float(payload[key]) if kind == "money" else optional_str(payload, key)
                setattr(prop, key, value)
            prop.updated_at = datetime.utcnow()

            seasonal = payload.get("seasonalPricing")
            if isinstance(seasonal, list):
                s.execute(delete(PropertyPricing).where(PropertyPricing.property_id == prop.id))
                for item in seasonal:
                    if not isinstance(item, dict):
                        continue
                    s.add(
                        PropertyPricing(
                            property_id=prop.id,
                            season_type=optional_str(item, "season_type"),
                            start_date_recurring=optional_str(item, "start_date_recurring"),
                            end_date_recurring=optional_str(item, "end_date_recurring"),
                            price_per_night=to_float(item.get("price_per_night")),
                            source_price_per_night=to_float(item.get("source_price_per_night")),
                            pricing_mode=optional_str(item, "pricing_mode") or "net",
                            pricing_type=optional_str(item, "pricing_type") or "per_night",
                            minimum_nights=clamp_int(item.get("minimum_nights"), low=1),
                            commission_type=optional_str(item, "commission_type"),
                            commission_value=to_float(item.get("commission_value")),
                        )
                    )
            logger.info("Owner %s updated pricing for property %s", owner_name, prop.id)

    def update_monthly_pricing(self, owner_name: str, property_id: int, payload: Dict[str, Any]) -> None:
        monthly = payload.get("monthlyPricing")
        if not isinstance(monthly, list):
            raise HTTPException(status_code=400, detail="Invalid monthly pricing data")

        with self.db.session() as s:
            prop = self._owned_property(s, property_id, owner_name)
            s.execute(delete(PropertyMonthlyPricing).where(PropertyMonthlyPricing.property_id == prop.id))
            kept = 0
            for item in monthly:
                if not isinstance(item, dict):
                    continue
                price = to_float(item.get("price_per_month"))
                if not price or price <= 0:
                    continue
                s.add(
                    PropertyMonthlyPricing(
                        property_id=prop.id,
                        month_number=clamp_int(item.get("month"), low=1, high=12),
                        price_per_month=price,
                        pricing_mode=optional_str(item, "pricing_mode") or "net",
                        commission_type=optional_str(item, "commission_type"),
                        commission_value=to_float(item.get("commission_value")),
                        minimum_days=clamp_int(item.get("minimum_days")) or 28,
                    )
                )
                kept += 1
            logger.info("Owner %s saved %s monthly prices for property %s", owner_name, kept, prop.id)

    def calendar(self, owner_name: str, property_id: int) -> Dict[str, Any]:
        with self.db.session() as s:
            prop = self._owned_property(s, property_id, owner_name)
            blocked = s.execute(
                select(PropertyCalendar)
                .where(PropertyCalendar.property_id == prop.id)
                .order_by(PropertyCalendar.blocked_date.asc())
            ).scalars().all()
            external = s.execute(
                select(PropertyExternalCalendar).where(PropertyExternalCalendar.property_id == prop.id)
            ).scalars().all()
            return {
                "blocked_dates": [model_to_dict(b, exclude=("property_id",)) for b in blocked],
                "external_calendars": [model_to_dict(c, exclude=("property_id",)) for c in external],
            }

    def update_calendar(self, owner_name: str, property_id: int, payload: Dict[str, Any]) -> None:
        to_remove = payload.get("dates_to_remove") or []
        to_add = payload.get("dates_to_add") or []
        if not isinstance(to_remove, list) or not isinstance(to_add, list):
            raise HTTPException(status_code=400, detail="dates_to_add and dates_to_remove must be lists")
        try:
            remove_dates = [parse_iso_date(d) for d in to_remove]
            add_entries = [(parse_iso_date(entry.get("date")), entry) for entry in to_add if isinstance(entry, dict)]
        except ValueError:
            raise HTTPException(status_code=400, detail="Dates must be in YYYY-MM-DD format")

        with self.db.session() as s:
            prop = self._owned_property(s, property_id, owner_name)
            remove_dates = [d for d in remove_dates if d]
            if remove_dates:
                s.execute(
                    delete(PropertyCalendar).where(
                        PropertyCalendar.property_id == prop.id, PropertyCalendar.blocked_date.in_(remove_dates)
                    )
                )

            for blocked_date, entry in add_entries:
                if blocked_date is None:
                    continue
                row = s.execute(
                    select(PropertyCalendar).where(
                        PropertyCalendar.property_id == prop.id, PropertyCalendar.blocked_date == blocked_date
                    )
                ).scalars().first()
                if row is None:
                    row = PropertyCalendar(property_id=prop.id, blocked_date=blocked_date)
                    s.add(row)
                    s.flush()
                row.reason = optional_str(entry, "reason") or DEFAULT_BLOCK_REASON
                row.is_check_in = parse_bool(entry.get("is_check_in"))
                row.is_check_out = parse_bool(entry.get("is_check_out"))
            logger.info(
                "Owner %s calendar update for property %s: +%s -%s", owner_name, prop.id, len(add_entries), len(remove_dates)
            )
