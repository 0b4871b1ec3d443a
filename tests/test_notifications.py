import asyncio

from hostel_service.application.notifications import NotificationCenter, NotificationType


class TestNotificationCenter:
    async def test_add_and_list(self):
        center = NotificationCenter(default_duration=0)
        center.success("user-1", "Added to favorites")
        center.error("user-1", "Failed to update favorite")
        assert [(n.type, n.message) for n in center.list("user-1")] == [
            (NotificationType.SUCCESS, "Added to favorites"),
            (NotificationType.ERROR, "Failed to update favorite"),
        ]
        assert center.list("user-2") == []

    async def test_auto_dismiss(self):
        center = NotificationCenter(default_duration=0.01)
        center.success("user-1", "Saved")
        await asyncio.sleep(0.05)
        assert center.list("user-1") == []
        assert "user-1" not in center._items

    async def test_zero_duration_is_kept(self):
        center = NotificationCenter(default_duration=0.01)
        center.add("user-1", NotificationType.INFO, "Pinned", duration=0)
        await asyncio.sleep(0.05)
        assert [n.message for n in center.list("user-1")] == ["Pinned"]

    async def test_removing_last_notification_drops_the_user(self):
        center = NotificationCenter(default_duration=0)
        first = center.success("user-1", "One")
        second = center.success("user-1", "Two")

        assert center.remove("user-1", first.id) is True
        assert "user-1" in center._items
        assert center.remove("user-1", second.id) is True
        assert "user-1" not in center._items
        assert center.remove("user-1", second.id) is False
        assert "user-1" not in center._items

    async def test_clear(self):
        center = NotificationCenter(default_duration=5)
        center.success("user-1", "One")
        center.clear("user-1")
        assert center.list("user-1") == []
        center.close()
