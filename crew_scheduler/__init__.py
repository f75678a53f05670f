"""Crew scheduling core: segment windows, availability, coverage, monthly projection and shift export."""
