from .response_delivery import ResponseDeliverySimulator, RevealHandle

__all__ = ['ResponseDeliverySimulator', 'RevealHandle']
