"""
Shared dependencies for the endpoint module.

The running CounterApp is attached to ``app.state.counter_app`` by
create_app(); routes receive it (or its gateway) through Depends.
"""

from fastapi import Depends, Request

from production_counter.app.CounterApp import CounterApp
from production_counter.persistence.Gateway import PersistenceGateway


def get_counter_app(request: Request) -> CounterApp:
    """Return the CounterApp bound to this FastAPI application."""
    return request.app.state.counter_app


def get_gateway(counter_app: CounterApp = Depends(get_counter_app)) -> PersistenceGateway:
    return counter_app.gateway
