"""Persistence backends: the relational project store, the local embedded store and the codec between trees and records."""
