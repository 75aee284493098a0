"""
DNS Orchestrator - unified DNS record management across cloud providers.

This package provides a provider-agnostic DNS model, hand-signed HTTP
clients for CloudFlare, Alibaba Cloud DNS, Tencent Cloud DNSPod and
Huawei Cloud DNS, and the account/credential lifecycle services built
on top of them.
"""

__version__ = "0.1.0"
__author__ = "DNS Orchestrator Contributors"
