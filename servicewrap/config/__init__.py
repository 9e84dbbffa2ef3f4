"""
servicewrap.config - Service descriptors and YAML loading

Provides the immutable ServiceDescriptor and ProbeConfig types.
"""

from .descriptor import ServiceDescriptor, ProbeConfig, descriptor_from_dict, load_service_config

__all__ = ['ServiceDescriptor', 'ProbeConfig', 'descriptor_from_dict', 'load_service_config']
