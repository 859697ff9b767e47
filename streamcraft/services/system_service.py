"""
Server resource usage for the dashboard.
"""
import os
import psutil

from streamcraft.services.broadcast_supervisor import BroadcastSupervisor


def get_system_stats(supervisor: BroadcastSupervisor) -> dict:
    """CPU, memory, disk and network counters plus active broadcast count"""
    memory = psutil.virtual_memory()
    disk_root = os.path.abspath(os.sep)
    disk = psutil.disk_usage(disk_root)
    network = psutil.net_io_counters()

    return {
        'cpu': psutil.cpu_percent(interval=None),
        'memory': {
            'percent': memory.percent,
            'used_gb': round(memory.used / (1024**3), 2),
            'total_gb': round(memory.total / (1024**3), 2)
        },
        'disk': {
            'drive': disk_root,
            'percent': disk.percent,
            'used_gb': round(disk.used / (1024**3), 2),
            'free_gb': round(disk.free / (1024**3), 2),
            'total_gb': round(disk.total / (1024**3), 2)
        },
        'network': {
            'bytes_sent': network.bytes_sent,
            'bytes_recv': network.bytes_recv
        },
        'active_streams': len(supervisor.list_running())
    }
