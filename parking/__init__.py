"""
Stockholm parking recommendations: nearby facilities ranked by distance
and live free-space counts.
"""
