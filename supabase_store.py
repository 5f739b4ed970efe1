"""
supabase_store.py — Remote PersistenceAdapter backed by Supabase tables.

Tables: patches, planted_items, plants, patch_tasks, profiles.
The supabase client raises on any API error; errors propagate to the caller,
which converts them into PersistenceError notifications.
"""

from __future__ import annotations
import logging
import uuid
from typing import Dict, List, Optional

from supabase import create_client, Client

from models import UserProfile
from persistence import (
    PersistenceAdapter, patch_from_row, patch_fields_to_row, plant_from_row,
    planted_item_from_row, group_by_patch,
)

logger = logging.getLogger(__name__)


def create_store(url: str, key: str) -> Optional["SupabaseStore"]:
    """
    Build a SupabaseStore from connection settings.

    Returns None when the URL or key is missing, or the client cannot be
    created; the app then runs on the local store alone.
    """
    if not url or not key:
        logger.warning("Supabase URL or key not configured. Running on the local store only.")
        return None

    try:
        client = create_client(url, key)
        logger.info("Supabase client initialized successfully")
        return SupabaseStore(client)
    except Exception as e:
        logger.error(f"Failed to initialize Supabase client: {e}")
        return None


class SupabaseStore(PersistenceAdapter):

    def __init__(self, client: Client):
        self.client = client

    # --- Patches ---

    def load_patches(self):
        result = self.client.table('patches').select('*').execute()
        return [patch_from_row(row) for row in (result.data or [])]

    def create_patch(self, fields, user_id):
        row = patch_fields_to_row(fields)
        row['user_id'] = user_id
        result = self.client.table('patches').insert(row).execute()
        if not result.data:
            raise RuntimeError("Patch insert returned no row")
        return patch_from_row(result.data[0])

    def update_patch(self, patch_id, fields):
        row = patch_fields_to_row(fields)
        if not row:
            return
        self.client.table('patches').update(row).eq('id', patch_id).execute()

    def delete_patch(self, patch_id):
        self.client.table('patches').delete().eq('id', patch_id).execute()

    # --- Planted items ---

    def load_planted_items(self):
        result = self.client.table('planted_items') \
            .select('patch_id, plant_id, position_x, position_y, stage, plants (*), patches (type)') \
            .execute()

        items = []
        for row in result.data or []:
            plant_row = row.get('plants')
            plant = plant_from_row(plant_row) if plant_row else None
            patch_type = (row.get('patches') or {}).get('type')
            items.append(planted_item_from_row(row, plant=plant, patch_type=patch_type))
        return group_by_patch(items)

    def upsert_planted_item(self, patch_id, x, y, plant_id, stage):
        self.client.table('planted_items').upsert(
            {
                'patch_id': patch_id,
                'position_x': x,
                'position_y': y,
                'plant_id': plant_id,
                'stage': stage,
            },
            on_conflict='patch_id,position_x,position_y',
        ).execute()

    def delete_planted_item(self, patch_id, x, y):
        self.client.table('planted_items') \
            .delete() \
            .eq('patch_id', patch_id) \
            .eq('position_x', x) \
            .eq('position_y', y) \
            .execute()

    def bulk_insert_planted_items(self, rows):
        if not rows:
            return
        self.client.table('planted_items').insert([
            {
                'patch_id': r['patch_id'],
                'position_x': r['x'],
                'position_y': r['y'],
                'plant_id': r['plant_id'],
                'stage': r['stage'],
            }
            for r in rows
        ]).execute()

    # --- Plants ---

    def load_plants(self):
        result = self.client.table('plants').select('*').order('name').execute()
        return [plant_from_row(row) for row in (result.data or [])]

    def create_plant(self, plant):
        row = {
            'id': plant.id or str(uuid.uuid4()),
            'name': plant.name,
            'icon': plant.icon,
            'category': plant.category,
            'lifecycle': plant.lifecycle or 'annual',
            'parent_id': plant.parent_id,
        }
        result = self.client.table('plants').insert(row).execute()
        if not result.data:
            raise RuntimeError("Plant insert returned no row")
        return plant_from_row(result.data[0])

    def delete_plant(self, plant_id):
        self.client.table('plants').delete().eq('id', plant_id).execute()

    # --- Patch tasks ---

    def load_patch_tasks(self):
        result = self.client.table('patch_tasks').select('patch_id, task').order('created_at').execute()
        tasks: Dict[str, List[str]] = {}
        for row in result.data or []:
            tasks.setdefault(row['patch_id'], []).append(row['task'])
        return tasks

    def add_patch_task(self, patch_id, task, user_id):
        self.client.table('patch_tasks').insert({
            'patch_id': patch_id,
            'task': task,
            'user_id': user_id,
        }).execute()

    def delete_patch_task(self, patch_id, task):
        result = self.client.table('patch_tasks') \
            .select('id') \
            .eq('patch_id', patch_id) \
            .eq('task', task) \
            .limit(1) \
            .execute()
        if result.data:
            self.client.table('patch_tasks').delete().eq('id', result.data[0]['id']).execute()

    # --- Profiles ---

    def load_profile(self, user_id):
        result = self.client.table('profiles').select('id, name').eq('id', user_id).limit(1).execute()
        if not result.data:
            return None
        row = result.data[0]
        return UserProfile(id=row['id'], name=row.get('name') or '')
