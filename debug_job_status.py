from autopost.db.context import get_db_session
from autopost.models import TikTokAccount, TikTokJob

with get_db_session() as db:
    jobs = db.query(TikTokJob).order_by(TikTokJob.created_at.desc()).limit(10).all()
    print(f"{'ID':<36} | {'Status':<10} | {'Progress':<8} | {'Scheduled':<25} | {'Product'}")
    print("-" * 110)
    for j in jobs:
        scheduled = j.scheduled_at.isoformat() if j.scheduled_at else "-"
        print(f"{j.id:<36} | {j.status:<10} | {j.progress:<8} | {scheduled:<25} | {j.product_name}")
        if j.progress_step:
            print(f"  step: {j.progress_step}")
        if j.error:
            print(f"  [ERROR] {j.error} (retries: {j.retry_count})")

    print("\nAccounts:")
    for a in db.query(TikTokAccount).all():
        print(f"  - {a.display_name or a.open_id} | active={a.is_active} | posts today={a.daily_post_count}"
              f" | last post={a.last_post_at}")
