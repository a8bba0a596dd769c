"""Unit import pipeline for unitsync.

Reconciles import batches into the live inventory inside one transaction and
keeps an append-only version history of every unit mutation.
"""
