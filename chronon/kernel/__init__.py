"""Application interface, side effects and outbox, snapshot files, an example bank application and view fencing."""