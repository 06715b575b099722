"""Composable handlers for WRP messages: authorization, missing-handler replies, mock TR-181, CRUD and QOS queueing."""

__version__ = "0.1.0"