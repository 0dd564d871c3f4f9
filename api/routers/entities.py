"""
Entity routers - direct read, search, create, patch and delete.

One router per register entity (appliances, fuels, users), all built by
build_entity_router(), plus the relationship endpoints joining users to
their assigned appliances and fuels.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Tuple, Type

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from api.dependencies import get_db, get_current_user
from api.schemas.common import PaginatedResponse
from api.schemas.entity_schema import (
    ApplianceCreate, ApplianceUpdate, FuelCreate, FuelUpdate, UserCreate, UserUpdate
)
from services.document_store import DocumentCollection, DocumentStore
from services.entity_config import EntityType, get_entity_config

logger = logging.getLogger(__name__)

ASSIGNMENT_FIELDS = ('assigned_date', 'status', 'notes')


@dataclass(frozen=True)
class EntityRoute:
    """Routing description for one register entity."""
    entity_type: EntityType
    path: str
    label: str
    create_schema: Type[BaseModel]
    update_schema: Type[BaseModel]
    search_fields: Tuple[str, ...]

    @property
    def config(self):
        return get_entity_config(self.entity_type)

    @property
    def key_field(self) -> str:
        return self.config.unique_key


def get_collection(db: Session, entity_type: EntityType) -> DocumentCollection:
    return DocumentStore(db).collection(get_entity_config(entity_type).collection_name)


def _not_found(label: str, entity_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"{label} {entity_id} not found"
    )


def build_entity_router(route: EntityRoute) -> APIRouter:
    """Create the CRUD + search router for one entity."""
    router = APIRouter(prefix=f'/{route.path}', tags=[route.path])

    @router.get('', response_model=PaginatedResponse[Dict[str, Any]])
    async def list_entities(
        page: int = Query(1, ge=1, description="Page number"),
        page_size: int = Query(20, ge=1, le=100, description="Items per page"),
        db: Session = Depends(get_db)
    ):
        collection = get_collection(db, route.entity_type)
        total = collection.count()
        items = collection.find(offset=(page - 1) * page_size, limit=page_size)
        return PaginatedResponse.create(items=items, total=total, page=page, page_size=page_size)

    @router.get('/search', response_model=PaginatedResponse[Dict[str, Any]])
    async def search_entities(
        q: str = Query(..., min_length=2, description="Search text"),
        page: int = Query(1, ge=1, description="Page number"),
        page_size: int = Query(20, ge=1, le=100, description="Items per page"),
        db: Session = Depends(get_db)
    ):
        collection = get_collection(db, route.entity_type)
        total = collection.search_count(q, route.search_fields)
        items = collection.search(q, route.search_fields, offset=(page - 1) * page_size, limit=page_size)
        return PaginatedResponse.create(items=items, total=total, page=page, page_size=page_size)

    @router.get('/{entity_id}')
    async def get_entity(entity_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
        document = get_collection(db, route.entity_type).find_one({route.key_field: entity_id})
        if document is None:
            raise _not_found(route.label, entity_id)
        return document

    @router.post('', status_code=status.HTTP_201_CREATED)
    async def create_entity(
        payload: route.create_schema,
        db: Session = Depends(get_db),
        current_user: str = Depends(get_current_user)
    ) -> Dict[str, Any]:
        collection = get_collection(db, route.entity_type)
        document = payload.model_dump()
        entity_id = document[route.key_field]

        if collection.find_one({route.key_field: entity_id}) is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"{route.label} {entity_id} already exists"
            )

        now = datetime.utcnow()
        for spec in route.config.fields:
            if spec.default_now and document.get(spec.name) is None:
                document[spec.name] = now
        document['created_at'] = now
        document['updated_at'] = now

        try:
            created = collection.insert(document)
        except IntegrityError as e:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"{route.label} violates a uniqueness or value constraint: {e.orig}"
            )

        logger.info(f"{route.label} {entity_id} created by {current_user}")
        return created

    @router.patch('/{entity_id}')
    async def update_entity(
        entity_id: str,
        payload: route.update_schema,
        db: Session = Depends(get_db),
        current_user: str = Depends(get_current_user)
    ) -> Dict[str, Any]:
        collection = get_collection(db, route.entity_type)
        fields = payload.model_dump(exclude_unset=True)
        fields['updated_at'] = datetime.utcnow()

        try:
            updated = collection.update_fields({route.key_field: entity_id}, fields)
        except IntegrityError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Update rejected: {e.orig}"
            )
        if not updated:
            raise _not_found(route.label, entity_id)

        logger.info(f"{route.label} {entity_id} updated by {current_user}")
        return collection.find_one({route.key_field: entity_id})

    @router.delete('/{entity_id}', status_code=status.HTTP_204_NO_CONTENT)
    async def delete_entity(
        entity_id: str,
        db: Session = Depends(get_db),
        current_user: str = Depends(get_current_user)
    ):
        deleted = get_collection(db, route.entity_type).delete({route.key_field: entity_id})
        if not deleted:
            raise _not_found(route.label, entity_id)
        logger.info(f"{route.label} {entity_id} deleted by {current_user}")
        return None

    return router


APPLIANCES = EntityRoute(
    entity_type=EntityType.APPLIANCES,
    path='appliances',
    label='Appliance',
    create_schema=ApplianceCreate,
    update_schema=ApplianceUpdate,
    search_fields=('model_name', 'manufacturer', 'appliance_type'),
)
FUELS = EntityRoute(
    entity_type=EntityType.FUELS,
    path='fuels',
    label='Fuel',
    create_schema=FuelCreate,
    update_schema=FuelUpdate,
    search_fields=('fuel_name', 'manufacturer_name', 'fuel_bagging'),
)
USERS = EntityRoute(
    entity_type=EntityType.USERS,
    path='users',
    label='User',
    create_schema=UserCreate,
    update_schema=UserUpdate,
    search_fields=('first_name', 'last_name', 'email'),
)

appliances_router = build_entity_router(APPLIANCES)
fuels_router = build_entity_router(FUELS)
users_router = build_entity_router(USERS)


def _with_assignments(
    documents: List[Dict[str, Any]],
    links: List[Dict[str, Any]],
    key: str
) -> List[Dict[str, Any]]:
    """Attach each document's assignment details (date, status, notes) from ``links``."""
    by_key = {link[key]: link for link in links}
    return [
        {**doc, 'assignment': {f: by_key[doc[key]].get(f) for f in ASSIGNMENT_FIELDS}}
        for doc in documents
    ]


@appliances_router.get('/{entity_id}/users')
async def get_appliance_users(entity_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Appliance with the users it is assigned to."""
    appliance = get_collection(db, EntityType.APPLIANCES).find_one({'appliance_id': entity_id})
    if appliance is None:
        raise _not_found('Appliance', entity_id)

    links = get_collection(db, EntityType.USER_APPLIANCES).find({'appliance_id': entity_id})
    users = get_collection(db, EntityType.USERS).find_in('user_id', [l['user_id'] for l in links])
    return {'appliance': appliance, 'users': _with_assignments(users, links, 'user_id')}


@fuels_router.get('/{entity_id}/users')
async def get_fuel_users(entity_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Fuel with the users it is assigned to."""
    fuel = get_collection(db, EntityType.FUELS).find_one({'fuel_id': entity_id})
    if fuel is None:
        raise _not_found('Fuel', entity_id)

    links = get_collection(db, EntityType.USER_FUELS).find({'fuel_id': entity_id})
    users = get_collection(db, EntityType.USERS).find_in('user_id', [l['user_id'] for l in links])
    return {'fuel': fuel, 'users': _with_assignments(users, links, 'user_id')}


@users_router.get('/{entity_id}/relations')
async def get_user_relations(entity_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """User with assigned appliances and fuels."""
    user = get_collection(db, EntityType.USERS).find_one({'user_id': entity_id})
    if user is None:
        raise _not_found('User', entity_id)

    appliance_links = get_collection(db, EntityType.USER_APPLIANCES).find({'user_id': entity_id})
    appliances = get_collection(db, EntityType.APPLIANCES).find_in(
        'appliance_id', [l['appliance_id'] for l in appliance_links]
    )
    fuel_links = get_collection(db, EntityType.USER_FUELS).find({'user_id': entity_id})
    fuels = get_collection(db, EntityType.FUELS).find_in('fuel_id', [l['fuel_id'] for l in fuel_links])

    return {
        'user': user,
        'appliances': _with_assignments(appliances, appliance_links, 'appliance_id'),
        'fuels': _with_assignments(fuels, fuel_links, 'fuel_id'),
    }
