from fastapi import APIRouter, Path, Response, status
from typing_extensions import Annotated

from app.dependencies import TaskServiceDep
from app.models import TaskCreate, TaskResponse, TaskUpdate

router = APIRouter(prefix="/api/tasks", tags=["tasks"])

# ids are PostgreSQL SERIAL (int4)
TaskId = Annotated[int, Path(ge=1, le=2**31 - 1)]


@router.get("", response_model=list[TaskResponse])
async def list_tasks(service: TaskServiceDep):
    """List all tasks, newest first"""
    return await service.list_tasks()


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(task_id: TaskId, service: TaskServiceDep):
    """Get a specific task by ID"""
    return await service.get_task(task_id)


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(task_data: TaskCreate, service: TaskServiceDep):
    """Create a new task"""
    return await service.create_task(task_data.title, task_data.description)


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(task_id: TaskId, task_data: TaskUpdate, service: TaskServiceDep):
    return await service.update_task(
        task_id, task_data.title, task_data.description, task_data.completed
    )


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(task_id: TaskId, service: TaskServiceDep):
    """Delete a task"""
    await service.delete_task(task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
