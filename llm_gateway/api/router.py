"""Root API router wiring."""

from fastapi import APIRouter

from llm_gateway.api.v1 import generation


api_router = APIRouter()
api_router.include_router(generation.router, prefix="/v1")
