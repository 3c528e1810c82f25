"""Repository layer: generic table access over crudkit.db.Database.

Services call CrudRepository with a table model instead of writing SQL.
"""
