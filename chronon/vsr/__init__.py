"""Replication protocol messages, an in-process mock network and client session helpers."""