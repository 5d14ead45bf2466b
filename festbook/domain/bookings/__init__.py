"""Bookings domain - booking state machine, counter-proposals and payment signals"""
