"""Source drivers that list and read migration files: directory, tree, asset and stub sources."""