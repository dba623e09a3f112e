"""Control plane mock for integration testing.

Provides an in-memory implementation of the ClusterAPI protocol so the
reconciler can be exercised end to end without a real control plane.

Key Features:
- In-memory clusters, warehouses and policies
- Action ids that resolve to terminal states on the next poll
- Scripted state sequences for poller and abnormal-state scenarios
- Error injection for any call
- Call history for asserting on the exact mutation sequence

Usage:
    from control_plane_mock import MockControlPlaneContext

    with MockControlPlaneContext() as ctx:
        reconciler = ClusterReconciler(ctx.api, FAST_TIMEOUTS)
        result = await reconciler.create(spec)

        assert ctx.state.mutation_names == ["deploy"]
"""

from .client import MockControlPlane
from .context import MockControlPlaneContext
from .state import MockCall, MockCluster, MockControlPlaneState, MockWarehouse

__all__ = [
    "MockCall",
    "MockCluster",
    "MockControlPlane",
    "MockControlPlaneContext",
    "MockControlPlaneState",
    "MockWarehouse",
]
