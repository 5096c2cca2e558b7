# jewelbill/health.py
from fastapi import APIRouter, Depends

from jewelbill.clients.supabase import SupabaseClient
from jewelbill.dependencies.services import get_supabase_client

router = APIRouter()


@router.get("/health")
def health(client: SupabaseClient = Depends(get_supabase_client)):
    return {"ok": True, "mock_data": client.use_mock_data}
