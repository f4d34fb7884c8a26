from obsentity import Entity, create

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Reacting to attribute changes")
print("-" * 100)
print()

account = create(Entity("account", attributes={"name": "Test", "int1": 10, "int2": 20}))


# Callbacks take no arguments: read whatever you need from the entity itself.
def recompute():
    account["int3"] = account.get("int1", int, 0) * account.get("int2", int, 0)
    print(f"int3 recomputed: {account['int3']}")


account.add_on_change("name", recompute)

print(f"int3 before: {account['int3']}")
account.set_value("name", "TestUpdate")  # This will run recompute()

# Force every tracked attribute's callbacks to run again, without writing.
account.invoke_all_on_change()

account.remove_on_change("name")
account["name"] = "Quiet"  # This will not run recompute()

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Attribute streams")
print("-" * 100)
print()

# A late subscriber gets the latest value right away, then every later write.
account.observe("int3").subscribe(lambda value: print(f"int3 stream: {value}"))
account["int3"] = 0

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Try-operations and the change feed")
print("-" * 100)
print()

basket = create("basket")
subscription = basket.subscribe(lambda change: print(f"{change.key} -> {change.value}"))

basket.try_get_or_add("Apples", 10)
basket.try_add_or_update("Oranges", 5)
basket.try_update("Apples", 15)
basket.try_update("Pears", 1)  # Not on the basket: nothing happens
basket.try_delete("Oranges")
basket.try_add_or_update_many(["Kiwi", "Plums"], [3, 4])

subscription.dispose()
basket.try_add_or_update("Apples", 20)  # No longer printed

print()
print(f"Final basket: {basket.record.attributes}")
