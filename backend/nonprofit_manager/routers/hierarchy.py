"""Route factory for the tree-shaped resources.

Inventory categories, storage locations and buildings share the same
list/tree/children/move/CRUD surface; `add_hierarchy_routes` mounts it
on a router under `path`.
"""

from typing import List, Type

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from .. import schemas
from ..auth import actor
from ..database import get_session
from ..services import HierarchyService


def add_hierarchy_routes(router: APIRouter, path: str, service_cls: Type[HierarchyService],
                         in_schema: Type[BaseModel], read_schema: Type[BaseModel]) -> None:
    name = path.strip("/").replace("-", "_")

    def _one(row):
        return read_schema.model_validate(row)

    def _many(rows):
        return [read_schema.model_validate(r) for r in rows]

    @router.get(path, response_model=List[read_schema], name=f"list_{name}")
    def list_nodes(include_inactive: bool = False, db: Session = Depends(get_session), who: tuple = Depends(actor)):
        return _many(service_cls(db, *who).list(include_inactive))

    @router.get(f"{path}/tree", name=f"{name}_tree")
    def node_tree(db: Session = Depends(get_session), who: tuple = Depends(actor)):
        return service_cls(db, *who).tree(read_schema)

    @router.get(f"{path}/roots", response_model=List[read_schema], name=f"{name}_roots")
    def root_nodes(db: Session = Depends(get_session), who: tuple = Depends(actor)):
        return _many(service_cls(db, *who).roots())

    @router.get(f"{path}/{{node_id}}", response_model=read_schema, name=f"get_{name}")
    def get_node(node_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
        return _one(service_cls(db, *who).get(node_id))

    @router.get(f"{path}/{{node_id}}/children", response_model=List[read_schema], name=f"{name}_children")
    def child_nodes(node_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
        service = service_cls(db, *who)
        service.get(node_id)
        return _many(service.children(node_id))

    @router.get(f"{path}/{{node_id}}/can-delete", name=f"{name}_can_delete")
    def can_delete_node(node_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
        service = service_cls(db, *who)
        service.get(node_id)
        return {"can_delete": service.can_delete(node_id)}

    @router.post(path, response_model=read_schema, status_code=201, name=f"create_{name}")
    def create_node(payload: in_schema, db: Session = Depends(get_session), who: tuple = Depends(actor)):
        return _one(service_cls(db, *who).create(payload))

    @router.put(f"{path}/{{node_id}}", response_model=read_schema, name=f"update_{name}")
    def update_node(node_id: int, payload: in_schema, db: Session = Depends(get_session),
                    who: tuple = Depends(actor)):
        return _one(service_cls(db, *who).update(node_id, payload))

    @router.post(f"{path}/{{node_id}}/move", response_model=read_schema, name=f"move_{name}")
    def move_node(node_id: int, payload: schemas.MoveIn, db: Session = Depends(get_session),
                  who: tuple = Depends(actor)):
        return _one(service_cls(db, *who).move(node_id, payload.new_parent_id))

    @router.delete(f"{path}/{{node_id}}", status_code=204, name=f"delete_{name}")
    def delete_node(node_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
        service_cls(db, *who).delete(node_id)

