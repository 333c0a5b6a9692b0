"""Positional grouping: neighbours, visual edges, alignment and vertical groups, partitions."""
