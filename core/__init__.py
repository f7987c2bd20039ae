"""
Core module for the PubSub bridge.

Contains the event bus, the subscription registry, hierarchical name
expansion, the remote bridge, session tracking, and the protocol
definitions (interfaces) for transports.
"""
