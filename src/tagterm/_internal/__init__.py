"""Internal APIs for tagterm. Not covered by any stability guarantee."""
