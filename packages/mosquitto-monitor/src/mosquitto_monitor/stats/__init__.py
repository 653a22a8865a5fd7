"""Broker statistics: the $SYS feed and host-side collection."""
