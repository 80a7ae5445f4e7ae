"""User-facing Vietnamese message formatting."""

from collections.abc import Sequence
from datetime import date

from .models import BatchResult, ConflictResult, EditInfo, Task, TaskInfo, TaskType

TYPE_EMOJIS = {
    TaskType.CALENDAR: "📅",
    TaskType.MEETING: "🤝",
    TaskType.TASK: "📝",
}

TYPE_TEXTS = {
    TaskType.CALENDAR: "Sự kiện lịch",
    TaskType.MEETING: "Cuộc họp",
    TaskType.TASK: "Task",
}

EMPTY_LIST = "Không có task nào."

HELP_TEXT = """📖 Hướng dẫn sử dụng:
/list - Danh sách task chưa xong
/new <nội dung> - Tạo task mới
/done <số|ID|từ khóa> - Đánh dấu hoàn thành (hỗ trợ "1,3,5" hoặc "1-3")
/delete <số|ID|từ khóa> - Xóa task
/edit <số> <trường>:<giá trị> - Chỉnh sửa (nội dung, ngày, giờ, địa điểm, mô tả)
/stats - Thống kê
/me - Thông tin tài khoản
/cancel - Hủy thao tác đang dở
Bạn cũng có thể nhắn tự nhiên, ví dụ: "họp team lúc 3h chiều mai"."""


def _status_icon(task: Task, today: date) -> str:
    if task.done:
        return "✅"
    if task.due_date is not None:
        if task.due_date < today:
            return "⚠️"
        if task.due_date == today:
            return "🔥"
    return "📝"


def format_task_list(
    tasks: Sequence[Task],
    include_ids: bool = True,
    include_positions: bool = True,
    today: date | None = None,
) -> str:
    """One line per task: position, status icon, content, date, time and id."""
    if not tasks:
        return EMPTY_LIST

    today = today or date.today()
    lines = []
    for position, task in enumerate(tasks, start=1):
        line = f"{position}. " if include_positions else ""
        line += f"{_status_icon(task, today)} {task.content}"
        if task.due_date:
            line += f" @{task.due_date.isoformat()}"
        if task.due_time:
            line += f" @{task.due_time.strftime('%H:%M')}"
        if include_ids:
            line += f" (ID:{task.id})"
        lines.append(line)
    return "\n".join(lines)


def format_not_found(reference: str, unfinished: Sequence[Task]) -> str:
    message = f'❌ Không tìm thấy task "{reference}".'
    if unfinished:
        message += "\n\n📋 Danh sách task hiện có:\n" + format_task_list(unfinished[:10])
        if len(unfinished) > 10:
            message += f"\n... và {len(unfinished) - 10} task khác"
    return message


def _append_outcome(lines: list[str], operation: str, result: BatchResult) -> None:
    successful = [d for d in result.details if d.success]
    if 0 < len(successful) <= 5:
        lines.append("")
        lines.append(f"🎯 Các task đã {operation}:")
        for i, detail in enumerate(successful, start=1):
            lines.append(f"{i}. {detail.task.content if detail.task else detail.reference}")

    failed = [d for d in result.details if not d.success]
    if 0 < len(failed) <= 3:
        lines.append("")
        lines.append(f"⚠️ Không thể {operation}:")
        for detail in failed:
            lines.append(f'• "{detail.reference}": {detail.error}')


def format_batch_result(operation: str, result: BatchResult) -> str:
    lines = [f"📊 Kết quả {operation}:"]
    if result.success_count:
        lines.append(f"✅ Thành công: {result.success_count} task")
    if result.failed_count:
        lines.append(f"❌ Thất bại: {result.failed_count} task")
    _append_outcome(lines, operation, result)
    return "\n".join(lines)


def format_edit_result(result: BatchResult, edit: EditInfo) -> str:
    lines = ["📝 Kết quả chỉnh sửa:"]
    if result.success_count:
        lines.append(f"✅ Thành công: {result.success_count} task")
    if result.failed_count:
        lines.append(f"❌ Thất bại: {result.failed_count} task")

    changes = []
    if edit.content:
        changes.append(f'Nội dung: "{edit.content}"')
    if edit.due_date:
        changes.append(f"Ngày: {edit.due_date.isoformat()}")
    if edit.due_time:
        changes.append(f"Giờ: {edit.due_time.strftime('%H:%M')}")
    if edit.end_time:
        changes.append(f"Giờ kết thúc: {edit.end_time.strftime('%H:%M')}")
    if edit.location:
        changes.append(f"Địa điểm: {edit.location}")
    if edit.description:
        changes.append(f"Mô tả: {edit.description}")
    if changes:
        lines.append("")
        lines.append("🎯 Thay đổi:")
        lines.extend(changes)

    _append_outcome(lines, "chỉnh sửa", result)
    return "\n".join(lines)


def format_conflict(result: ConflictResult) -> str:
    """Conflict warning listing the collisions and the suggested starts."""
    lines = ["⚠️ Phát hiện xung đột lịch trình:", ""]
    for i, conflict in enumerate(result.conflicts, start=1):
        at = f" lúc {conflict.entry.start.strftime('%H:%M')}"
        lines.append(f"{i}. {conflict.entry.label}{at}")

    if result.suggested_times:
        lines.append("")
        lines.append("💡 Đề xuất thời gian khác:")
        for i, suggestion in enumerate(result.suggested_times, start=1):
            lines.append(f"{i}. {suggestion.strftime('%H:%M')}")

    lines.append("")
    lines.append(
        'Bạn có muốn tạo task với thời gian gốc không? '
        'Phản hồi "có" để tiếp tục hoặc "không" để hủy.'
    )
    return "\n".join(lines)


def format_created(
    task_info: TaskInfo,
    synced: Sequence[str] = (),
    reminder_set: bool = False,
) -> str:
    emoji = TYPE_EMOJIS[task_info.task_type]
    type_text = TYPE_TEXTS[task_info.task_type]

    lines = [f"✅ Đã tạo {type_text.lower()} thành công:", f"{emoji} {task_info.title}"]
    if task_info.due_date:
        lines.append(f"📅 Ngày: {task_info.due_date.isoformat()}")
    if task_info.effective_start:
        lines.append(f"⏰ Giờ: {task_info.effective_start.strftime('%H:%M')}")
    if task_info.location:
        lines.append(f"📍 Địa điểm: {task_info.location}")
    if task_info.attendees:
        lines.append(f"👥 Người tham gia: {', '.join(task_info.attendees)}")
    lines.append(f"🏷️ Loại: {type_text}")
    if synced:
        lines.append(f"🔄 Đã đồng bộ: {', '.join(synced)}")
    if reminder_set:
        lines.append("⏰ Reminder đã được thiết lập")
    return "\n".join(lines)


def format_stats(stats: dict[str, int]) -> str:
    return f"Tổng: {stats['total']}\nHoàn thành: {stats['done']}\nChưa xong: {stats['undone']}"


def format_checklist(tasks: Sequence[Task]) -> str:
    """Morning summary: titles of every unfinished task."""
    if not tasks:
        return "☀️ Checklist sáng: " + EMPTY_LIST
    lines = ["☀️ Checklist sáng:"]
    lines.extend(f"{position}. {task.content}" for position, task in enumerate(tasks, start=1))
    return "\n".join(lines)


def format_near_due(task: Task, minutes_left: int) -> str:
    lines = [f"🚨 Sắp đến hạn: {task.content}"]
    if task.due_date and task.due_time:
        lines.append(
            f"📅 Thời gian: {task.due_date.isoformat()} {task.due_time.strftime('%H:%M')}"
        )
    if task.location:
        lines.append(f"📍 Địa điểm: {task.location}")
    if task.description:
        lines.append(f"📝 Mô tả: {task.description}")
    if task.end_time:
        lines.append(f"⏰ Kết thúc: {task.end_time.strftime('%H:%M')}")
    lines.append(f"⏳ Còn {minutes_left} phút")
    return "\n".join(lines)


def format_reminder(task_info: TaskInfo) -> str:
    emoji = TYPE_EMOJIS[task_info.task_type]
    line = f"⏰ Nhắc nhở: {emoji} {task_info.title}"
    if task_info.due_date:
        line += f" @{task_info.due_date.isoformat()}"
    if task_info.effective_start:
        line += f" @{task_info.effective_start.strftime('%H:%M')}"
    return line
