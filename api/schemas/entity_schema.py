"""
Register entity Pydantic schemas.

Create schemas carry the same defaults the spreadsheet import applies;
update schemas accept any subset of the mutable fields.
"""

from datetime import datetime
from typing import List, Literal, Optional, Type

from pydantic import BaseModel, Field, create_model

from services.entity_config import NO_EMAIL

ApplianceTypeLiteral = Literal['Stove', 'Boiler', 'Fire', 'Heater', 'Other']
FuelBaggingLiteral = Literal['Bagged', 'Loose', 'Bulk']
RoleLiteral = Literal['admin', 'user', 'manager', 'viewer']


class ApplianceCreate(BaseModel):
    """Direct appliance creation request."""

    appliance_id: str = Field(..., min_length=1, description="Business identifier e.g. APP001")
    manufacturer: str = 'Unknown'
    manufacturer_address: str = 'Not Provided'
    manufacturer_contact_name: str = 'Not Provided'
    manufacturer_contact_email: str = NO_EMAIL
    manufacturer_alternate_email: Optional[str] = None
    manufacturer_phone: str = 'Not Provided'
    model_name: str = 'Unknown Model'
    model_number: str = 'N/A'
    appliance_type: ApplianceTypeLiteral = 'Other'
    is_variant: bool = False
    existing_authorised_appliance: Optional[str] = None
    nominal_output: float = Field(0, ge=0, description="Nominal output in kW")
    allowed_fuels: str = 'Not Specified'
    permitted_fuels: Optional[List[str]] = None
    instruction_manual_title: str = 'Not Provided'
    instruction_manual_date: Optional[datetime] = None
    instruction_manual_reference: str = 'N/A'
    additional_conditions: Optional[str] = None
    submitted_by: str = 'Unknown'
    approved_by: str = 'Unknown'
    published_date: Optional[datetime] = None


class FuelCreate(BaseModel):
    """Direct fuel creation request."""

    fuel_id: str = Field(..., min_length=1, description="Business identifier e.g. FUEL001")
    manufacturer_name: str = 'Unknown'
    manufacturer_address: str = 'Not Provided'
    manufacturer_contact_name: str = 'Not Provided'
    manufacturer_contact_email: str = NO_EMAIL
    manufacturer_alternate_email: Optional[str] = None
    manufacturer_phone: str = 'Not Provided'
    representative_name: str = 'Not Provided'
    representative_email: str = NO_EMAIL
    has_customer_complaints: bool = False
    quality_control_system: str = 'Not Specified'
    certification_scheme: str = 'None'
    fuel_name: str = 'Unknown Fuel'
    fuel_bagging: FuelBaggingLiteral = 'Bagged'
    is_bagged_at_source: bool = False
    fuel_description: str = 'No description'
    fuel_weight: str = 'Not Specified'
    fuel_composition: str = 'Not Specified'
    sulphur_content: float = Field(0, ge=0, le=100, description="Sulphur content in percent")
    manufacturing_process: str = 'Not Specified'
    is_rebranded_product: bool = False
    has_changed_from_original: bool = False
    brand_names: Optional[List[str]] = None


class UserCreate(BaseModel):
    """Direct user creation request."""

    user_id: str = Field(..., min_length=1, description="Business identifier e.g. USER001")
    first_name: str = 'Unknown'
    last_name: str = 'User'
    email: str = NO_EMAIL
    phone: Optional[str] = None
    role: RoleLiteral = 'user'
    organization: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postcode: Optional[str] = None
    is_active: bool = False
    registration_date: Optional[datetime] = None


def partial_model(model: Type[BaseModel], name: str, exclude: tuple = ()) -> Type[BaseModel]:
    """Copy of ``model`` with every field optional and defaulting to None."""
    fields = {}
    for field_name, info in model.model_fields.items():
        if field_name in exclude:
            continue
        fields[field_name] = (Optional[info.annotation], Field(None, description=info.description))
    return create_model(name, **fields)


ApplianceUpdate = partial_model(ApplianceCreate, 'ApplianceUpdate', exclude=('appliance_id',))
FuelUpdate = partial_model(FuelCreate, 'FuelUpdate', exclude=('fuel_id',))
UserUpdate = partial_model(UserCreate, 'UserUpdate', exclude=('user_id',))
