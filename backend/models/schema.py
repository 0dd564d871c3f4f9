"""
SQLAlchemy models for the appliance and fuel register.

One table per importable entity type. Identity columns carry unique
constraints (composite for the user link tables); enumerations and numeric
ranges are enforced with CHECK constraints so that bad imported values are
rejected by the store rather than silently coerced.
"""

from datetime import date, datetime
from typing import Any, Dict

from sqlalchemy import (
    JSON, Boolean, Column, Float, Integer, String, Text, TIMESTAMP,
    CheckConstraint, Index, UniqueConstraint, text
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite test databases)
JSONList = JSON().with_variant(JSONB(), 'postgresql')


class DocumentMixin:
    """Shared timestamp columns and dictionary conversion for register entities."""

    created_at = Column(
        TIMESTAMP,
        server_default=text('CURRENT_TIMESTAMP'),
        nullable=False,
        comment='First insert timestamp (never overwritten)'
    )
    updated_at = Column(
        TIMESTAMP,
        server_default=text('CURRENT_TIMESTAMP'),
        nullable=False,
        comment='Last write timestamp'
    )

    @classmethod
    def document_fields(cls):
        """Column names making up the document (everything except the surrogate id)."""
        return [c.name for c in cls.__table__.columns if c.name != 'id']

    def to_document(self) -> Dict[str, Any]:
        """Raw column values keyed by field name."""
        return {name: getattr(self, name) for name in self.document_fields()}

    def to_dict(self) -> dict:
        """JSON-friendly representation (dates as ISO strings)."""
        result = {}
        for name, value in self.to_document().items():
            if isinstance(value, (datetime, date)):
                value = value.isoformat()
            result[name] = value
        return result


class Appliance(DocumentMixin, Base):
    """A registered heating appliance."""

    __tablename__ = 'appliances'
    __table_args__ = (
        CheckConstraint(
            "appliance_type IN ('Stove', 'Boiler', 'Fire', 'Heater', 'Other')",
            name='appliances_appliance_type_check'
        ),
        CheckConstraint('nominal_output >= 0', name='appliances_nominal_output_check'),
        Index('idx_appliances_manufacturer', 'manufacturer'),
        Index('idx_appliances_appliance_type', 'appliance_type'),
        {'comment': 'Registered heating appliances'}
    )

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    appliance_id = Column(
        String(100),
        nullable=False,
        unique=True,
        comment='Business identifier e.g. APP001'
    )
    manufacturer = Column(String(255), nullable=False)
    manufacturer_address = Column(Text, nullable=False)
    manufacturer_contact_name = Column(String(255), nullable=False)
    manufacturer_contact_email = Column(String(255), nullable=False)
    manufacturer_alternate_email = Column(String(255), nullable=True)
    manufacturer_phone = Column(String(100), nullable=False)
    model_name = Column(String(255), nullable=False)
    model_number = Column(String(100), nullable=False)
    appliance_type = Column(String(20), nullable=False, default='Other')
    is_variant = Column(Boolean, nullable=False, default=False)
    existing_authorised_appliance = Column(String(255), nullable=True)
    nominal_output = Column(Float, nullable=False, default=0, comment='Nominal output in kW')
    allowed_fuels = Column(Text, nullable=False, comment='Free-text description of allowed fuels')
    permitted_fuels = Column(JSONList, nullable=True, comment='List of permitted fuel ids')
    instruction_manual_title = Column(String(255), nullable=False)
    instruction_manual_date = Column(TIMESTAMP, nullable=False)
    instruction_manual_reference = Column(String(255), nullable=False)
    additional_conditions = Column(Text, nullable=True)
    submitted_by = Column(String(255), nullable=False)
    approved_by = Column(String(255), nullable=False)
    published_date = Column(TIMESTAMP, nullable=False)

    def __repr__(self):
        return f"<Appliance(appliance_id='{self.appliance_id}', model_name='{self.model_name}')>"


class Fuel(DocumentMixin, Base):
    """A registered fuel product."""

    __tablename__ = 'fuels'
    __table_args__ = (
        CheckConstraint(
            "fuel_bagging IN ('Bagged', 'Loose', 'Bulk')",
            name='fuels_fuel_bagging_check'
        ),
        CheckConstraint(
            'sulphur_content >= 0 AND sulphur_content <= 100',
            name='fuels_sulphur_content_check'
        ),
        Index('idx_fuels_manufacturer_name', 'manufacturer_name'),
        {'comment': 'Registered fuel products'}
    )

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    fuel_id = Column(
        String(100),
        nullable=False,
        unique=True,
        comment='Business identifier e.g. FUEL001'
    )
    manufacturer_name = Column(String(255), nullable=False)
    manufacturer_address = Column(Text, nullable=False)
    manufacturer_contact_name = Column(String(255), nullable=False)
    manufacturer_contact_email = Column(String(255), nullable=False)
    manufacturer_alternate_email = Column(String(255), nullable=True)
    manufacturer_phone = Column(String(100), nullable=False)
    representative_name = Column(String(255), nullable=False)
    representative_email = Column(String(255), nullable=False)
    has_customer_complaints = Column(Boolean, nullable=False, default=False)
    quality_control_system = Column(Text, nullable=False)
    certification_scheme = Column(Text, nullable=False)
    fuel_name = Column(String(255), nullable=False)
    fuel_bagging = Column(String(20), nullable=False, default='Bagged')
    is_bagged_at_source = Column(Boolean, nullable=False, default=False)
    fuel_description = Column(Text, nullable=False)
    fuel_weight = Column(Text, nullable=False)
    fuel_composition = Column(Text, nullable=False)
    sulphur_content = Column(Float, nullable=False, default=0, comment='Sulphur content in percent')
    manufacturing_process = Column(Text, nullable=False)
    is_rebranded_product = Column(Boolean, nullable=False, default=False)
    has_changed_from_original = Column(Boolean, nullable=False, default=False)
    brand_names = Column(JSONList, nullable=True, comment='List of brand names')

    def __repr__(self):
        return f"<Fuel(fuel_id='{self.fuel_id}', fuel_name='{self.fuel_name}')>"


class User(DocumentMixin, Base):
    """A register user."""

    __tablename__ = 'users'
    __table_args__ = (
        CheckConstraint(
            "role IN ('admin', 'user', 'manager', 'viewer')",
            name='users_role_check'
        ),
        Index('idx_users_last_name', 'last_name'),
        {'comment': 'Register users'}
    )

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    user_id = Column(
        String(100),
        nullable=False,
        unique=True,
        comment='Business identifier e.g. USER001'
    )
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    phone = Column(String(100), nullable=True)
    role = Column(String(20), nullable=False, default='user')
    organization = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    city = Column(String(255), nullable=True)
    postcode = Column(String(20), nullable=True)
    is_active = Column(Boolean, nullable=False, default=False)
    registration_date = Column(TIMESTAMP, nullable=True)

    def __repr__(self):
        return f"<User(user_id='{self.user_id}', email='{self.email}')>"


class UserAppliance(DocumentMixin, Base):
    """Assignment of an appliance to a user."""

    __tablename__ = 'user_appliances'
    __table_args__ = (
        UniqueConstraint('user_id', 'appliance_id', name='uq_user_appliances_user_appliance'),
        CheckConstraint(
            "status IN ('active', 'inactive', 'pending', 'expired')",
            name='user_appliances_status_check'
        ),
        Index('idx_user_appliances_appliance_id', 'appliance_id'),
        {'comment': 'User to appliance assignments'}
    )

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    user_id = Column(String(100), nullable=False)
    appliance_id = Column(String(100), nullable=False)
    assigned_date = Column(TIMESTAMP, nullable=False)
    status = Column(String(20), nullable=False, default='active')
    notes = Column(Text, nullable=True)

    def __repr__(self):
        return f"<UserAppliance(user_id='{self.user_id}', appliance_id='{self.appliance_id}')>"


class UserFuel(DocumentMixin, Base):
    """Assignment of a fuel to a user."""

    __tablename__ = 'user_fuels'
    __table_args__ = (
        UniqueConstraint('user_id', 'fuel_id', name='uq_user_fuels_user_fuel'),
        CheckConstraint(
            "status IN ('active', 'inactive', 'pending', 'expired')",
            name='user_fuels_status_check'
        ),
        Index('idx_user_fuels_fuel_id', 'fuel_id'),
        {'comment': 'User to fuel assignments'}
    )

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    user_id = Column(String(100), nullable=False)
    fuel_id = Column(String(100), nullable=False)
    assigned_date = Column(TIMESTAMP, nullable=False)
    status = Column(String(20), nullable=False, default='active')
    notes = Column(Text, nullable=True)

    def __repr__(self):
        return f"<UserFuel(user_id='{self.user_id}', fuel_id='{self.fuel_id}')>"
