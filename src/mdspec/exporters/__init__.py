"""Serializers for parsed spec documents."""
