"""Upstream transports: DNS-over-HTTPS for forwarding, plain UDP for bootstrap."""
