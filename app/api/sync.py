from fastapi import APIRouter, Depends

from app.core.errors import ValidationError
from app.deps import get_synchronizer
from app.schemas import SyncActionIn, SyncPushIn
from app.services.record_sync import RecordSynchronizer, record_counts

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.get("")
def get_sync(sync: RecordSynchronizer = Depends(get_synchronizer)):
    """Current shared dataset, as stored."""
    return sync.pull().to_json_dict()


@router.post("")
def post_sync(payload: SyncPushIn, sync: RecordSynchronizer = Depends(get_synchronizer)):
    """
    Replace the shared dataset (last writer wins). Collections missing from the
    body keep their stored value.
    """
    snapshot = sync.push_partial(
        payload.source,
        tenders=payload.tenders,
        users=payload.users,
        files=payload.files,
        settings=payload.settings,
    )
    return {
        "success": True,
        "message": "Data synchronized successfully",
        "timestamp": snapshot.last_updated.isoformat(),
        "count": record_counts(snapshot),
    }


@router.put("")
def put_sync(payload: SyncActionIn, sync: RecordSynchronizer = Depends(get_synchronizer)):
    if payload.action != "merge":
        raise ValidationError("Invalid action")
    snapshot = sync.merge(tenders=payload.data.tenders, users=payload.data.users)
    return {
        "success": True,
        "message": "Data merged successfully",
        "timestamp": snapshot.last_updated.isoformat(),
        "count": record_counts(snapshot),
    }
