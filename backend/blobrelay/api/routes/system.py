"""System status — backend node health."""

from fastapi import APIRouter, Depends

from blobrelay.schemas.system import BackendNodeStatus, BackendPoolStatus
from blobrelay.services import get_registry
from blobrelay.services.node_registry import NodeRegistry

router = APIRouter()


@router.get("/backends", response_model=BackendPoolStatus)
async def backend_status(registry: NodeRegistry = Depends(get_registry)):
    """Per-node health: failure streaks, rate-limit hits, retirement."""
    nodes = [BackendNodeStatus(**entry) for entry in registry.status()]
    return BackendPoolStatus(
        is_available=registry.is_available(),
        total_nodes=len(nodes),
        active_nodes=sum(1 for n in nodes if n.active),
        nodes=nodes,
    )
