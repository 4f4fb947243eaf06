"""
Reactgate - human approval gate for privileged actions

A caller asks for permission (e.g. to deploy); the request is granted only
after someone reacts to the prompt posted in the approval channel.

Architecture:
- Correlation engine: matches reactions to pending requests, expires the rest
- Synchronous façade: /ticket blocks until answered
- Polled façade: third-party discharge rounds the first party polls
"""

__version__ = "0.1.0"
