from .vip_repository import VipRepository

__all__ = ["VipRepository"]
