from functools import lru_cache

from app.config import settings
from app.services.media_store import R2MediaStore, build_r2_client
from app.services.payment_gateway import RazorpayGateway


@lru_cache()
def get_payment_gateway() -> RazorpayGateway:
    return RazorpayGateway(
        key_id=settings.razorpay_key_id,
        key_secret=settings.razorpay_key_secret,
        allow_simulated=settings.allow_simulated_payments,
    )


@lru_cache()
def get_media_store() -> R2MediaStore:
    client = build_r2_client(
        settings.r2_account_id,
        settings.r2_access_key_id,
        settings.r2_secret_access_key,
    )
    return R2MediaStore(client, settings.r2_bucket_name, settings.r2_public_base)
