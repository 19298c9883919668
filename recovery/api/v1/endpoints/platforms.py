"""
Supported checkout platforms.
"""
from typing import Any, Dict, List

from fastapi import APIRouter, Depends

import recovery.config as config
from recovery.api.deps import get_parser_registry, require_admin_token
from recovery.parsers.registry import ParserRegistry

router = APIRouter(dependencies=[Depends(require_admin_token)])


@router.get(
    "",
    response_model=List[Dict[str, Any]],
    summary="List platforms with a registered webhook parser"
)
def list_platforms(registry: ParserRegistry = Depends(get_parser_registry)) -> List[Dict[str, Any]]:
    return [
        {
            "name": name,
            "webhook_url": f"{config.PUBLIC_BASE_URL}/webhook/{name}/{{store_id}}",
        }
        for name in registry.platforms()
    ]
