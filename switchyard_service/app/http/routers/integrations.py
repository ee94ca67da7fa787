from fastapi import APIRouter

from switchyard_service.integrations.catalog import INTEGRATIONS, format_tool_name

router = APIRouter(prefix="/integrations", tags=["integrations"])


@router.get("")
def list_integrations():
    """Known integrations and the tools each one exposes once connected."""
    return [
        {
            "id": spec.id,
            "name": spec.name,
            "description": spec.description,
            "tools": [{"id": tool, "label": format_tool_name(tool)} for tool in spec.default_tools],
        }
        for spec in INTEGRATIONS.values()
    ]
