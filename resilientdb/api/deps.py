from typing import Annotated

from fastapi import Depends, Request

from resilientdb.core.db import Database


def get_database(request: Request) -> Database:
    """The process Database, built by the app lifespan."""
    return request.app.state.database


DatabaseDep = Annotated[Database, Depends(get_database)]
