"""Notifications domain - scheduled notification queue and its processor"""
