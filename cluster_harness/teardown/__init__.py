from .tracker import wait_for_teardown

__all__ = ["wait_for_teardown"]
