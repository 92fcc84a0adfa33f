from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..backup import export_data, import_data
from ..database import get_db

router = APIRouter(prefix="/backup", tags=["backup"])


@router.get("/export")
def export_backup(db: Session = Depends(get_db)):
    return export_data(db)


@router.post("/import")
def import_backup(request: schemas.BackupImport, db: Session = Depends(get_db)):
    """Merge (default) or replace. Returns per-type counts."""
    counts = import_data(db, request.data, replace=request.replace)
    return {"ok": True, "replace": request.replace, "counts": counts}
