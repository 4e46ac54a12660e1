"""
apcupsd Network Information Server client package.

Queries apcupsd daemons over TCP, decodes their length-prefixed status
lines, derives power, stored energy and remaining runtime, and scans IPv4
networks for responsive daemons.

CHANGELOG:
- 2026-10-09: Initial creation

TODO:
- None
"""
