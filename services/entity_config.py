"""
Entity configuration - importable entity types, their field tables and registry.

Every entity is described by one table of FieldSpec entries (document field,
spreadsheet header aliases, coercion kind, default, allowed choices). A single
generic routine, transform_row(), turns a spreadsheet row into a complete
document for any entity, so there is no per-entity transform code to drift
apart.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from services.errors import MissingKeyError, UnknownEntityTypeError
from services.field_normalizer import (
    get_value, is_missing, parse_boolean, parse_date, parse_float, parse_list
)

logger = logging.getLogger(__name__)

# Field kinds
TEXT = 'text'
BOOL = 'bool'
DATE = 'date'
FLOAT = 'float'
LIST = 'list'
CHOICE = 'choice'

NO_EMAIL = 'noemail@example.com'

APPLIANCE_TYPES = ('Stove', 'Boiler', 'Fire', 'Heater', 'Other')
FUEL_BAGGING_TYPES = ('Bagged', 'Loose', 'Bulk')
USER_ROLES = ('admin', 'user', 'manager', 'viewer')
LINK_STATUSES = ('active', 'inactive', 'pending', 'expired')


class EntityType(str, Enum):
    """Importable entity kinds (values are the names used in import requests)."""
    APPLIANCES = 'appliances'
    FUELS = 'fuels'
    USERS = 'users'
    USER_APPLIANCES = 'userAppliances'
    USER_FUELS = 'userFuels'


@dataclass(frozen=True)
class FieldSpec:
    """
    How one document field is read from a spreadsheet row.

    ``aliases`` are tried in order; the first alias doubles as the template
    column header. ``default_now`` substitutes the transform timestamp when
    a date is absent or unparseable.
    """
    name: str
    aliases: Tuple[str, ...]
    kind: str = TEXT
    default: Any = None
    choices: Tuple[str, ...] = ()
    required: bool = False
    default_now: bool = False

    @property
    def header(self) -> str:
        return self.aliases[0]


@dataclass(frozen=True)
class EntityConfig:
    """Registry entry for one entity type."""
    entity_type: EntityType
    collection_name: str
    default_sheet_name: str
    unique_key: Optional[str]  # None means composite (user_id + appliance_id/fuel_id)
    fields: Tuple[FieldSpec, ...]
    sample_data: Callable[[], Dict[str, str]]

    @property
    def is_composite(self) -> bool:
        return self.unique_key is None

    @property
    def headers(self) -> List[str]:
        """Template column headers, in field order."""
        return [spec.header for spec in self.fields]

    def field(self, name: str) -> FieldSpec:
        for spec in self.fields:
            if spec.name == name:
                return spec
        raise KeyError(name)

    def transform(self, row: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
        return transform_row(self, row, now)

    def identity(self, document: Dict[str, Any]) -> Dict[str, Any]:
        """
        Build the lookup filter identifying ``document``.

        Raises:
            MissingKeyError: if any identity value is empty
        """
        if not self.is_composite:
            value = document.get(self.unique_key)
            if is_missing(value):
                raise MissingKeyError(self.field(self.unique_key).header)
            return {self.unique_key: value}

        if is_missing(document.get('user_id')):
            raise MissingKeyError('userId')
        if not is_missing(document.get('appliance_id')):
            return {'user_id': document['user_id'], 'appliance_id': document['appliance_id']}
        if not is_missing(document.get('fuel_id')):
            return {'user_id': document['user_id'], 'fuel_id': document['fuel_id']}
        raise MissingKeyError('applianceId/fuelId')


def _coerce(spec: FieldSpec, raw: Any, now: datetime) -> Any:
    if spec.kind == BOOL:
        return parse_boolean(raw)

    if spec.kind == FLOAT:
        if is_missing(raw):
            return parse_float(spec.default, spec.header, spec.required)
        return parse_float(raw, spec.header, spec.required)

    if spec.kind == DATE:
        parsed = parse_date(raw)
        if parsed is None and spec.default_now:
            return now
        return parsed

    if spec.kind == LIST:
        return parse_list(raw)

    if spec.kind == CHOICE:
        if isinstance(raw, str):
            wanted = raw.strip().lower()
            for choice in spec.choices:
                if choice.lower() == wanted:
                    return choice
        if not is_missing(raw):
            logger.debug(f"Value {raw!r} not allowed for {spec.name}, using {spec.default!r}")
        return spec.default

    if is_missing(raw):
        return spec.default
    text = raw.strip() if isinstance(raw, str) else str(raw)
    return text if text != '' else spec.default


def transform_row(
    config: Union[EntityConfig, EntityType, str],
    row: Dict[str, Any],
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Transform a spreadsheet row into a complete document.

    Every configured field is present in the result (optional ones as None)
    and both timestamps are stamped with ``now``.

    Args:
        config: Entity config, or an entity type / type name
        row: Spreadsheet row keyed by column header
        now: Timestamp to stamp (default: current UTC time)

    Returns:
        Document dictionary keyed by field name

    Raises:
        MissingKeyError: if a required identity field is unresolved
        FieldValueError: if a required numeric field is invalid
    """
    if not isinstance(config, EntityConfig):
        config = get_entity_config(config)
    now = now or datetime.utcnow()

    document = {}
    for spec in config.fields:
        raw = get_value(row, spec.aliases)
        value = _coerce(spec, raw, now)
        if spec.required and is_missing(value):
            raise MissingKeyError(spec.header)
        document[spec.name] = value

    document['created_at'] = now
    document['updated_at'] = now
    return document


# ==================== FIELD TABLES ====================

APPLIANCE_FIELDS = (
    FieldSpec('appliance_id', ('applianceId', 'ApplianceID', 'ID'), required=True),
    FieldSpec('manufacturer', ('manufacturer', 'Manufacturer'), default='Unknown'),
    FieldSpec('manufacturer_address', ('manufacturerAddress', 'Manufacturer Address'),
              default='Not Provided'),
    FieldSpec('manufacturer_contact_name', ('manufacturerContactName', 'Contact Name'),
              default='Not Provided'),
    FieldSpec('manufacturer_contact_email', ('manufacturerContactEmail', 'Contact Email'),
              default=NO_EMAIL),
    FieldSpec('manufacturer_alternate_email', ('manufacturerAlternateEmail', 'Alternate Email')),
    FieldSpec('manufacturer_phone', ('manufacturerPhone', 'Contact Phone'), default='Not Provided'),
    FieldSpec('model_name', ('modelName', 'Model Name'), default='Unknown Model'),
    FieldSpec('model_number', ('modelNumber', 'Model Number'), default='N/A'),
    FieldSpec('appliance_type', ('applianceType', 'Appliance Type'), CHOICE,
              default='Other', choices=APPLIANCE_TYPES),
    FieldSpec('is_variant', ('isVariant', 'Is Variant'), BOOL),
    FieldSpec('existing_authorised_appliance', ('existingAuthorisedAppliance', 'Existing Appliance')),
    FieldSpec('nominal_output', ('nominalOutput', 'Nominal Output (kW)'), FLOAT, default=0),
    FieldSpec('allowed_fuels', ('allowedFuels', 'Allowed Fuels'), default='Not Specified'),
    FieldSpec('permitted_fuels', ('permittedFuels', 'Permitted Fuels'), LIST),
    FieldSpec('instruction_manual_title', ('instructionManualTitle', 'Manual Title'),
              default='Not Provided'),
    FieldSpec('instruction_manual_date', ('instructionManualDate', 'Manual Date'), DATE,
              default_now=True),
    FieldSpec('instruction_manual_reference', ('instructionManualReference', 'Manual Reference'),
              default='N/A'),
    FieldSpec('additional_conditions', ('additionalConditions', 'Additional Conditions')),
    FieldSpec('submitted_by', ('submittedBy', 'Submitted By'), default='Unknown'),
    FieldSpec('approved_by', ('approvedBy', 'Approved By'), default='Unknown'),
    FieldSpec('published_date', ('publishedDate', 'Published Date'), DATE, default_now=True),
)

FUEL_FIELDS = (
    FieldSpec('fuel_id', ('fuelId', 'FuelID', 'ID'), required=True),
    FieldSpec('manufacturer_name', ('manufacturerName', 'Manufacturer Name'), default='Unknown'),
    FieldSpec('manufacturer_address', ('manufacturerAddress', 'Manufacturer Address'),
              default='Not Provided'),
    FieldSpec('manufacturer_contact_name', ('manufacturerContactName', 'Contact Name'),
              default='Not Provided'),
    FieldSpec('manufacturer_contact_email', ('manufacturerContactEmail', 'Contact Email'),
              default=NO_EMAIL),
    FieldSpec('manufacturer_alternate_email', ('manufacturerAlternateEmail', 'Alternate Email')),
    FieldSpec('manufacturer_phone', ('manufacturerPhone', 'Contact Phone'), default='Not Provided'),
    FieldSpec('representative_name', ('representativeName', 'Representative Name'),
              default='Not Provided'),
    FieldSpec('representative_email', ('representativeEmail', 'Representative Email'),
              default=NO_EMAIL),
    FieldSpec('has_customer_complaints',
              ('hasCustomerComplaints', 'Customer Complaints', 'Has Complaints'), BOOL),
    FieldSpec('quality_control_system', ('qualityControlSystem', 'Quality Control System'),
              default='Not Specified'),
    FieldSpec('certification_scheme', ('certificationScheme', 'Certification Scheme'),
              default='None'),
    FieldSpec('fuel_name', ('fuelName', 'Fuel Name'), default='Unknown Fuel'),
    # Only the storage schema restricts bagging to FUEL_BAGGING_TYPES
    FieldSpec('fuel_bagging', ('fuelBagging', 'Fuel Bagging'), default='Bagged'),
    FieldSpec('is_bagged_at_source', ('isBaggedAtSource', 'Bagged at Source'), BOOL),
    FieldSpec('fuel_description', ('fuelDescription', 'Fuel Description'), default='No description'),
    FieldSpec('fuel_weight', ('fuelWeight', 'Fuel Weight'), default='Not Specified'),
    FieldSpec('fuel_composition', ('fuelComposition', 'Fuel Composition'), default='Not Specified'),
    FieldSpec('sulphur_content', ('sulphurContent', 'Sulphur Content', 'Sulphur Content (%)'),
              FLOAT, default=0),
    FieldSpec('manufacturing_process', ('manufacturingProcess', 'Manufacturing Process'),
              default='Not Specified'),
    FieldSpec('is_rebranded_product', ('isRebrandedProduct', 'Is Rebranded'), BOOL),
    FieldSpec('has_changed_from_original', ('hasChangedFromOriginal', 'Changed from Original'), BOOL),
    FieldSpec('brand_names', ('brandNames', 'Brand Names'), LIST),
)

USER_FIELDS = (
    FieldSpec('user_id', ('userId', 'UserID', 'ID'), required=True),
    FieldSpec('first_name', ('firstName', 'First Name'), default='Unknown'),
    FieldSpec('last_name', ('lastName', 'Last Name'), default='User'),
    FieldSpec('email', ('email', 'Email'), default=NO_EMAIL),
    FieldSpec('phone', ('phone', 'Phone')),
    FieldSpec('role', ('role', 'Role'), CHOICE, default='user', choices=USER_ROLES),
    FieldSpec('organization', ('organization', 'Organization')),
    FieldSpec('address', ('address', 'Address')),
    FieldSpec('city', ('city', 'City')),
    FieldSpec('postcode', ('postcode', 'Postcode')),
    FieldSpec('is_active', ('isActive', 'Is Active'), BOOL),
    FieldSpec('registration_date', ('registrationDate', 'Registration Date'), DATE),
)

USER_APPLIANCE_FIELDS = (
    FieldSpec('user_id', ('userId', 'UserID', 'User ID'), required=True),
    FieldSpec('appliance_id', ('applianceId', 'ApplianceID', 'Appliance ID'), required=True),
    FieldSpec('assigned_date', ('assignedDate', 'Assigned Date'), DATE, default_now=True),
    FieldSpec('status', ('status', 'Status'), default='active'),
    FieldSpec('notes', ('notes', 'Notes')),
)

USER_FUEL_FIELDS = (
    FieldSpec('user_id', ('userId', 'UserID', 'User ID'), required=True),
    FieldSpec('fuel_id', ('fuelId', 'FuelID', 'Fuel ID'), required=True),
    FieldSpec('assigned_date', ('assignedDate', 'Assigned Date'), DATE, default_now=True),
    FieldSpec('status', ('status', 'Status'), default='active'),
    FieldSpec('notes', ('notes', 'Notes')),
)


# ==================== SAMPLE ROWS ====================

def get_sample_appliance() -> Dict[str, str]:
    return {
        'applianceId': 'APP001',
        'manufacturer': 'Stoves LTD',
        'manufacturerAddress': '24 Bowerfield Lane Newcastle NE638BO',
        'manufacturerContactName': 'Joe Bloggs',
        'manufacturerContactEmail': 'Joe.bloggs@gmail.com',
        'manufacturerAlternateEmail': 'Joe.bloggs2@gmail.com',
        'manufacturerPhone': '7846638263',
        'modelName': 'Hot Stove 89',
        'modelNumber': 'AHS231',
        'applianceType': 'Stove',
        'isVariant': 'Yes',
        'existingAuthorisedAppliance': 'Hot Stove 88',
        'nominalOutput': '12',
        'allowedFuels': 'Wood Logs, Wood Pellets',
        'permittedFuels': 'FUEL001, FUEL002',
        'instructionManualTitle': 'Stove manual instructions',
        'instructionManualDate': '01/07/2024',
        'instructionManualReference': 'Issue 08',
        'additionalConditions': 'Must be fitted with the supplied secondary air control limiters',
        'submittedBy': 'Phil Mitchell',
        'approvedBy': 'Bruce Lee',
        'publishedDate': '04/02/2025',
    }


def get_sample_fuel() -> Dict[str, str]:
    return {
        'fuelId': 'FUEL001',
        'manufacturerName': 'Fuels Company Ltd',
        'manufacturerAddress': '24 Bowerfield Lane Newcastle NE638BO',
        'manufacturerContactName': 'Joe Bloggs',
        'manufacturerContactEmail': 'Joe.bloggs@gmail.com',
        'manufacturerAlternateEmail': 'Joe.bloggs2@gmail.com',
        'manufacturerPhone': '7846638263',
        'representativeName': 'Simon Gates',
        'representativeEmail': 'Simon.Gates@FuelsLTD.com',
        'hasCustomerComplaints': 'No',
        'qualityControlSystem': 'ISO 9001 certified',
        'certificationScheme': 'Fuel authorisation under the Clean Air Act 1993',
        'fuelName': 'Eco Briquettes Premium',
        'fuelBagging': 'Bagged',
        'isBaggedAtSource': 'Yes',
        'fuelDescription': 'Pillow-shaped briquettes with single line indentation',
        'fuelWeight': 'Average weight of 125 to 135 grams per briquette',
        'fuelComposition': 'Anthracite fines (60% to 80%)',
        'sulphurContent': '20',
        'manufacturingProcess': 'Roll pressing and heat treatment at 300 degrees celsius',
        'isRebrandedProduct': 'No',
        'hasChangedFromOriginal': 'No',
        'brandNames': 'Fuel brand 1, Fuel brand 2',
    }


def get_sample_user() -> Dict[str, str]:
    return {
        'userId': 'USER001',
        'firstName': 'John',
        'lastName': 'Smith',
        'email': 'john.smith@example.com',
        'phone': '07700900123',
        'role': 'admin',
        'organization': 'DEFRA',
        'address': '123 Main Street',
        'city': 'London',
        'postcode': 'SW1A 1AA',
        'isActive': 'Yes',
        'registrationDate': '01/01/2025',
    }


def get_sample_user_appliance() -> Dict[str, str]:
    return {
        'userId': 'USER001',
        'applianceId': 'APP001',
        'assignedDate': '15/01/2025',
        'status': 'active',
        'notes': 'Primary heating appliance',
    }


def get_sample_user_fuel() -> Dict[str, str]:
    return {
        'userId': 'USER001',
        'fuelId': 'FUEL001',
        'assignedDate': '15/01/2025',
        'status': 'active',
        'notes': 'Preferred fuel type',
    }


# ==================== REGISTRY ====================

ENTITY_CONFIG: Dict[EntityType, EntityConfig] = {
    EntityType.APPLIANCES: EntityConfig(
        entity_type=EntityType.APPLIANCES,
        collection_name='Appliances',
        default_sheet_name='Appliances',
        unique_key='appliance_id',
        fields=APPLIANCE_FIELDS,
        sample_data=get_sample_appliance,
    ),
    EntityType.FUELS: EntityConfig(
        entity_type=EntityType.FUELS,
        collection_name='Fuels',
        default_sheet_name='Fuels',
        unique_key='fuel_id',
        fields=FUEL_FIELDS,
        sample_data=get_sample_fuel,
    ),
    EntityType.USERS: EntityConfig(
        entity_type=EntityType.USERS,
        collection_name='Users',
        default_sheet_name='Users',
        unique_key='user_id',
        fields=USER_FIELDS,
        sample_data=get_sample_user,
    ),
    EntityType.USER_APPLIANCES: EntityConfig(
        entity_type=EntityType.USER_APPLIANCES,
        collection_name='UserAppliances',
        default_sheet_name='UserAppliances',
        unique_key=None,
        fields=USER_APPLIANCE_FIELDS,
        sample_data=get_sample_user_appliance,
    ),
    EntityType.USER_FUELS: EntityConfig(
        entity_type=EntityType.USER_FUELS,
        collection_name='UserFuels',
        default_sheet_name='UserFuels',
        unique_key=None,
        fields=USER_FUEL_FIELDS,
        sample_data=get_sample_user_fuel,
    ),
}

_unregistered = set(EntityType) - set(ENTITY_CONFIG)
if _unregistered:
    raise RuntimeError(f"Entity types without configuration: {sorted(t.value for t in _unregistered)}")


def resolve_entity_type(name: Union[EntityType, str]) -> Optional[EntityType]:
    """Map a request name to an EntityType, or None if it is not registered."""
    if isinstance(name, EntityType):
        return name
    try:
        return EntityType(name)
    except ValueError:
        return None


def get_entity_config(entity_type: Union[EntityType, str]) -> EntityConfig:
    """
    Look up the registry entry for an entity type.

    Raises:
        UnknownEntityTypeError: if the name is not registered
    """
    resolved = resolve_entity_type(entity_type)
    if resolved is None:
        raise UnknownEntityTypeError(str(entity_type))
    return ENTITY_CONFIG[resolved]
