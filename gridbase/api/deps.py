from typing import Annotated

from fastapi import Depends, Request

from gridbase.adapters.base import DatabaseAdapter


def get_db(request: Request) -> DatabaseAdapter:
    return request.app.state.adapter


AdapterDep = Annotated[DatabaseAdapter, Depends(get_db)]
