"""Album sharing codec."""

from .codec import SharingCodec, mint_share_id

__all__ = ["SharingCodec", "mint_share_id"]
