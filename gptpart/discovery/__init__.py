"""Device discovery."""
from gptpart.discovery.devices import AUTO_DEVICE, DeviceDiscovery, open_device

__all__ = ['AUTO_DEVICE', 'DeviceDiscovery', 'open_device']
