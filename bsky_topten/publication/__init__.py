from .publisher import TopTenPublisher, compose_message

__all__ = ["TopTenPublisher", "compose_message"]
