from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import ValidationError

from DoneList.shared.models import DecompositionResult, SubItem, Task
from DoneList.shared.task_store import TaskStore

router = APIRouter(prefix="/api/v1")


def get_store(request: Request, x_user_id: Optional[str] = Header(default=None)) -> TaskStore:
    """Task store for the calling user (``X-User-Id``), or the shared default"""
    return request.app.state.task_store.for_user(x_user_id)


def _found(task: Optional[Task], task_id: str) -> Task:
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task not found: {task_id}")
    return task


def _sub_items(payload: Dict[str, Any]) -> List[SubItem]:
    try:
        return [SubItem(**item) for item in payload.get("subItems", [])]
    except (TypeError, ValidationError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid sub-items: {e}")


@router.get("/tasks", response_model=List[Task])
async def get_tasks(store: TaskStore = Depends(get_store)):
    """Get all tasks, newest first"""
    return await store.list_tasks()


@router.post("/tasks", response_model=Task, status_code=201)
async def create_task(task_data: Dict[str, Any], store: TaskStore = Depends(get_store)):
    """Create a new task"""
    title = task_data.get("title")
    if not isinstance(title, str):
        title = ""
    try:
        task = await store.create_task(title, task_data.get("assignedDate") or None)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid task: {e}")
    if task is None:
        raise HTTPException(status_code=400, detail="Task title must not be empty")
    return task


@router.post("/tasks/clear-completed")
async def clear_completed(store: TaskStore = Depends(get_store)):
    """Delete every completed task"""
    removed = await store.clear_completed()
    return {"removed": removed}


@router.get("/tasks/{task_id}", response_model=Task)
async def get_task(task_id: str, store: TaskStore = Depends(get_store)):
    """Get a specific task by ID"""
    return _found(await store.get_task(task_id), task_id)


@router.patch("/tasks/{task_id}", response_model=Task)
async def update_task(task_id: str, updates: Dict[str, Any], store: TaskStore = Depends(get_store)):
    """Update title, date, everyday flag or completion"""
    try:
        task = await store.update_task(task_id, updates)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid update: {e}")
    return _found(task, task_id)


@router.delete("/tasks/{task_id}")
async def delete_task(task_id: str, store: TaskStore = Depends(get_store)):
    """Delete a task"""
    if not await store.delete_task(task_id):
        raise HTTPException(status_code=404, detail=f"Task not found: {task_id}")
    return {"message": "Task deleted successfully"}


@router.post("/tasks/{task_id}/toggle", response_model=Task)
async def toggle_task(task_id: str, store: TaskStore = Depends(get_store)):
    """Flip the completed flag"""
    return _found(await store.toggle_task(task_id), task_id)


@router.post("/tasks/{task_id}/everyday", response_model=Task)
async def toggle_everyday(task_id: str, store: TaskStore = Depends(get_store)):
    """Flip the everyday flag"""
    return _found(await store.toggle_everyday(task_id), task_id)


@router.post("/tasks/{task_id}/sub-items", response_model=Task)
async def add_sub_items(task_id: str, payload: Dict[str, Any], store: TaskStore = Depends(get_store)):
    """Append sub-items"""
    return _found(await store.add_sub_items(task_id, _sub_items(payload)), task_id)


@router.put("/tasks/{task_id}/sub-items", response_model=Task)
async def replace_sub_items(task_id: str, payload: Dict[str, Any], store: TaskStore = Depends(get_store)):
    """Replace all sub-items"""
    return _found(await store.replace_sub_items(task_id, _sub_items(payload)), task_id)


@router.post("/tasks/{task_id}/sub-items/{sub_item_id}/toggle", response_model=Task)
async def toggle_sub_item(task_id: str, sub_item_id: str, store: TaskStore = Depends(get_store)):
    """Flip one sub-item; completing the last open one completes the task"""
    task = await store.toggle_sub_item(task_id, sub_item_id)
    if task is None:
        raise HTTPException(
            status_code=404, detail=f"Sub-item not found: {task_id}/{sub_item_id}"
        )
    return task


@router.put("/tasks/{task_id}/analysis", response_model=Task)
async def update_analysis(
    task_id: str, analysis: DecompositionResult, store: TaskStore = Depends(get_store)
):
    """Store the last AI analysis verbatim"""
    return _found(await store.update_analysis(task_id, analysis), task_id)
