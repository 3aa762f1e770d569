"""API routes for catalog management.

REST endpoints::

    GET    /catalog                 — list items (active only by default)
    GET    /catalog/search?q=       — search by name/description
    GET    /catalog/stats           — sales statistics
    GET    /catalog/{item_id}       — item details
    POST   /catalog                 — add an item            (admin)
    PATCH  /catalog/{item_id}       — change an item         (admin)
    DELETE /catalog/{item_id}       — deactivate an item     (admin)
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query, status

from ticketgate.api.dependencies import AdminDep, AuthDep, CatalogDep
from ticketgate.api.schemas import CreateItemRequest, UpdateItemRequest

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.get("", summary="List catalog items")
async def list_items(
    _auth: AuthDep,
    catalog: CatalogDep,
    include_inactive: bool = Query(default=False),
) -> list[dict[str, Any]]:
    items = await catalog.list_items(active_only=not include_inactive)
    return [i.to_dict() for i in items]


@router.get("/search", summary="Search catalog items")
async def search_items(
    _auth: AuthDep,
    catalog: CatalogDep,
    q: str = Query(min_length=1, max_length=100),
) -> list[dict[str, Any]]:
    return [i.to_dict() for i in await catalog.search(q)]


@router.get("/stats", summary="Catalog and sales statistics")
async def catalog_stats(_auth: AuthDep, catalog: CatalogDep) -> dict[str, Any]:
    return (await catalog.stats()).to_dict()


@router.get("/{item_id}", summary="Get one catalog item")
async def get_item(item_id: int, _auth: AuthDep, catalog: CatalogDep) -> dict[str, Any]:
    return (await catalog.get_item(item_id)).to_dict()


@router.post("", status_code=status.HTTP_201_CREATED, summary="Add a catalog item")
async def create_item(body: CreateItemRequest, _admin: AdminDep, catalog: CatalogDep) -> dict[str, Any]:
    item = await catalog.create_item(
        name=body.name,
        price=body.price,
        description=body.description,
        image_url=body.image_url,
        digital_content=body.digital_content,
        stock=body.stock,
    )
    return item.to_dict()


@router.patch("/{item_id}", summary="Update a catalog item")
async def update_item(
    item_id: int,
    body: UpdateItemRequest,
    _admin: AdminDep,
    catalog: CatalogDep,
) -> dict[str, Any]:
    changes = body.model_dump(exclude_unset=True)
    item = await catalog.update_item(item_id, **changes)
    return item.to_dict()


@router.delete("/{item_id}", summary="Deactivate a catalog item")
async def delete_item(item_id: int, _admin: AdminDep, catalog: CatalogDep) -> dict[str, Any]:
    return (await catalog.delete_item(item_id)).to_dict()
