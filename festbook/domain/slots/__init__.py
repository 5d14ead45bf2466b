"""Slots domain - performer availability and the reservation protocol"""
